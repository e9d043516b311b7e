"""
CLI and batch tests

The provider is replaced with a stub; the cache store is a real file under
tmp_path.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from ratecache import main as cli
from ratecache.cache import RateCache
from ratecache.models import RateRecord
from ratecache.providers.base import BaseRateProvider, UnknownCurrencyError
from ratecache.storage import CacheStore


class CountingProvider(BaseRateProvider):
    """Serves fixed quotes for the requested date."""

    PROVIDER_NAME = "counting"
    QUOTES = {"usd": ("91.00", 1), "eur": ("99.1930", 1), "uah": ("23.8712", 10)}

    def __init__(self, client=None):
        super().__init__(client)
        self.calls: list[str] = []

    def fetch_rate(self, currency: str, on_date: date) -> RateRecord:
        self.calls.append(currency)
        if currency not in self.QUOTES:
            raise UnknownCurrencyError(
                message=f"cannot get currency rate for '{currency}'",
                provider=self.PROVIDER_NAME,
            )
        value, nominal = self.QUOTES[currency]
        return RateRecord(currency=currency, date=on_date, raw_value=value, divisor=nominal)


@pytest.fixture
def provider(monkeypatch):
    stub = CountingProvider()
    monkeypatch.setattr(cli, "create_provider", lambda settings, client, bulletins: stub)
    return stub


class TestResolveRates:

    def test_rows_in_request_order(self, tmp_path):
        with CacheStore.open(tmp_path / "cache") as store:
            rate_cache = RateCache(store, CountingProvider())
            rows = cli.resolve_rates(rate_cache, ["uah", "usd"], date(2024, 1, 10))

        assert [r.as_list() for r in rows] == [
            ["10.01.2024", "UAH", "2.39"],
            ["10.01.2024", "USD", "91.00"],
        ]

    def test_stops_at_first_failure(self, tmp_path):
        stub = CountingProvider()
        with CacheStore.open(tmp_path / "cache") as store:
            rate_cache = RateCache(store, stub)
            with pytest.raises(cli.BatchLookupError) as exc_info:
                cli.resolve_rates(rate_cache, ["usd", "xyz", "eur"], date(2024, 1, 10))

        assert stub.calls == ["usd", "xyz"]
        assert exc_info.value.currency == "xyz"
        assert isinstance(exc_info.value.cause, UnknownCurrencyError)
        assert str(exc_info.value).startswith("XYZ 10.01.2024: ")


class TestParser:

    def test_currency_list(self):
        args = cli.build_parser().parse_args(["--currency", "USD, eur,"])
        assert args.currency == ["usd", "eur"]

    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.currency == ["usd"]
        assert args.days_before == 0
        assert not args.skip_cache

    @pytest.mark.parametrize("argv", [
        ["--currency", ","],
        ["--days-before", "-1"],
        ["--provider", "ecb"],
    ])
    def test_invalid_arguments(self, argv):
        with pytest.raises(SystemExit) as exc_info:
            cli.build_parser().parse_args(argv)
        assert exc_info.value.code == 2


class TestMain:

    def test_prints_tab_separated_rows(self, tmp_path, provider, capsys):
        cli.main(["--currency", "usd,eur", "--cache-path", str(tmp_path / "cache")])

        today = (date.today()).strftime("%d.%m.%Y")
        assert capsys.readouterr().out == (
            f"{today}\tUSD\t91.00\n"
            f"{today}\tEUR\t99.19\n"
        )

    def test_second_run_served_from_cache(self, tmp_path, provider, capsys):
        argv = ["--currency", "usd", "--cache-path", str(tmp_path / "cache")]
        cli.main(argv)
        first = capsys.readouterr().out
        cli.main(argv)

        assert capsys.readouterr().out == first
        assert provider.calls == ["usd"]

    def test_skip_cache_refetches(self, tmp_path, provider, capsys):
        argv = ["--currency", "usd", "--cache-path", str(tmp_path / "cache")]
        cli.main(argv)
        cli.main(argv + ["--skip-cache"])

        assert provider.calls == ["usd", "usd"]

    def test_days_before(self, tmp_path, provider, capsys):
        cli.main(["--days-before", "3", "--cache-path", str(tmp_path / "cache")])

        expected = (date.today() - timedelta(days=3)).strftime("%d.%m.%Y")
        assert capsys.readouterr().out.startswith(expected)

    def test_failure_exits_without_output(self, tmp_path, provider, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--currency", "usd,xyz,eur", "--cache-path", str(tmp_path / "cache")])

        assert exc_info.value.code == 1
        assert capsys.readouterr().out == ""
        assert provider.calls == ["usd", "xyz"]

    def test_show_cache(self, tmp_path, provider, capsys):
        path = str(tmp_path / "cache")
        cli.main(["--currency", "uah", "--cache-path", path])
        capsys.readouterr()

        cli.main(["--show-cache", "--cache-path", path])

        out = capsys.readouterr().out
        assert out.endswith("\tUAH\t2.39\n")
        assert provider.calls == ["uah"]

    def test_cached_entry_is_provider_faithful(self, tmp_path, provider):
        path = tmp_path / "cache"
        cli.main(["--currency", "uah", "--cache-path", str(path)])

        with CacheStore.open(path) as store:
            [(key, payload)] = list(store.iter_items("cache"))

        record = RateRecord.from_bytes(payload)
        assert key.endswith("-uah")
        assert record.raw_value == Decimal("23.8712")
        assert record.divisor == 10
