"""
ratecache Command Line Entry Point

    ratecache --currency usd,eur --days-before 1

Looks up each currency in turn through the read-through cache and prints one
tab-separated row per currency. Any failure aborts the whole batch before
anything is printed.
"""

import argparse
import logging
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Sequence

from ratecache import __version__
from ratecache.cache import RateCache, cached_records
from ratecache.config import Settings, get_settings
from ratecache.models import RateRow
from ratecache.normalizer import format_date, to_row
from ratecache.output import write_rows
from ratecache.providers import (
    BulletinCache,
    RateProviderError,
    build_http_client,
    create_provider,
)
from ratecache.storage import CacheError, CacheStore

logger = logging.getLogger("ratecache")


class BatchLookupError(Exception):
    """A lookup in the batch failed; carries which one."""

    def __init__(self, currency: str, on_date: date, cause: Exception):
        super().__init__(f"{currency.upper()} {format_date(on_date)}: {cause}")
        self.currency = currency
        self.on_date = on_date
        self.cause = cause


def parse_currencies(value: str) -> list[str]:
    currencies = [c.strip().lower() for c in value.split(",") if c.strip()]
    if not currencies:
        raise argparse.ArgumentTypeError("select at least one currency")
    return currencies


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ratecache",
        description="CBR exchange rates with a local cache"
    )
    parser.add_argument(
        "--currency",
        type=parse_currencies,
        default=["usd"],
        help="Comma separated currency codes (default: usd)"
    )
    parser.add_argument(
        "--skip-cache",
        action="store_true",
        help="Ignore cached entries, fetch live and overwrite the cache"
    )
    parser.add_argument(
        "--days-before",
        type=non_negative_int,
        default=0,
        help="Get the rate for the date N days before today"
    )
    parser.add_argument(
        "--provider",
        choices=["cbr_xml", "cbr_json"],
        default=None,
        help="Rate provider variant (default: from settings)"
    )
    parser.add_argument(
        "--cache-path",
        type=Path,
        default=None,
        help="Cache database file (default: from settings)"
    )
    parser.add_argument(
        "--show-cache",
        action="store_true",
        help="Print every cached entry and exit without network access"
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_rates(
    rate_cache: RateCache,
    currencies: Sequence[str],
    on_date: date,
    bypass_cache: bool = False
) -> list[RateRow]:
    """
    Resolve every currency sequentially, one transaction each.

    Stops at the first failure.

    Raises:
        BatchLookupError: Wrapping the provider or cache error of the failed lookup
    """
    rows: list[RateRow] = []
    for currency in currencies:
        try:
            record = rate_cache.get_rate(currency, on_date, bypass_cache)
        except (RateProviderError, CacheError) as e:
            raise BatchLookupError(currency, on_date, e) from e
        rows.append(to_row(record))
    return rows


def run(
    settings: Settings,
    currencies: Sequence[str],
    on_date: date,
    bypass_cache: bool = False
) -> list[RateRow]:
    """Open the store and HTTP client for the duration of one batch."""
    with CacheStore.open(settings.cache_path, settings.lock_timeout) as store, \
            build_http_client(settings.request_timeout, settings.user_agent) as client:
        provider = create_provider(settings, client, BulletinCache())
        rate_cache = RateCache(store, provider, settings.bucket_name)
        return resolve_rates(rate_cache, currencies, on_date, bypass_cache)


def show_cache(settings: Settings) -> list[RateRow]:
    with CacheStore.open(settings.cache_path, settings.lock_timeout) as store:
        return [
            to_row(record)
            for record in cached_records(store, settings.bucket_name)
        ]


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    overrides = {}
    if args.provider is not None:
        overrides["provider"] = args.provider
    if args.cache_path is not None:
        overrides["cache_path"] = args.cache_path
    if overrides:
        settings = settings.model_copy(update=overrides)

    logging.basicConfig(
        level=logging.INFO if args.verbose else settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    on_date = date.today() - timedelta(days=args.days_before)

    try:
        if args.show_cache:
            rows = show_cache(settings)
        else:
            rows = run(settings, args.currency, on_date, args.skip_cache)
    except BatchLookupError as e:
        logger.error(str(e))
        sys.exit(1)
    except CacheError as e:
        logger.error(f"Cache store unavailable: {e}")
        sys.exit(1)

    write_rows(rows, sys.stdout)


if __name__ == "__main__":
    main()
