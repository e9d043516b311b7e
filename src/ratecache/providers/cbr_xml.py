"""
Central Bank of Russia daily bulletin (XML)

One document per date lists every currency:
    <ValCurs Date="10.01.2024" name="Foreign Currency Market">
      <Valute ID="R01235">
        <NumCode>840</NumCode><CharCode>USD</CharCode><Nominal>1</Nominal>
        <Name>...</Name><Value>91,0000</Value>
      </Valute>
      ...
The body is windows-1251 encoded and uses a decimal comma.
API Documentation: https://www.cbr.ru/development/SXML/
"""

import logging
import xml.etree.ElementTree as ET
from datetime import date

import httpx

from ratecache.models import RateRecord
from ratecache.normalizer import parse_decimal
from ratecache.providers.base import (
    BaseRateProvider,
    MalformedResponseError,
    UnknownCurrencyError,
)

logger = logging.getLogger(__name__)

CBR_REQUEST_DATE_FORMAT = "%d/%m/%Y"


class BulletinCache:
    """
    Parsed bulletins for the current run, keyed by date.

    Lets a batch of currencies for the same day share one download.
    Lives only as long as the run that created it.
    """

    def __init__(self):
        self._bulletins: dict[date, dict[str, RateRecord]] = {}

    def get(self, on_date: date) -> dict[str, RateRecord] | None:
        return self._bulletins.get(on_date)

    def put(self, on_date: date, rates: dict[str, RateRecord]) -> None:
        self._bulletins[on_date] = rates

    def __len__(self) -> int:
        return len(self._bulletins)


class CbrXmlProvider(BaseRateProvider):
    """Rates from the CBR XML_daily bulletin."""

    PROVIDER_NAME = "cbr_xml"

    def __init__(
        self,
        client: httpx.Client,
        base_url: str,
        bulletins: BulletinCache | None = None
    ):
        super().__init__(client)
        self.base_url = base_url
        self.bulletins = bulletins if bulletins is not None else BulletinCache()

    def fetch_rate(self, currency: str, on_date: date) -> RateRecord:
        code = currency.strip().lower()
        rates = self.fetch_bulletin(on_date)

        record = rates.get(code)
        if record is None:
            raise UnknownCurrencyError(
                message=f"cannot get currency rate for '{currency}'",
                provider=self.PROVIDER_NAME,
                details={
                    "currency": currency,
                    "date": on_date.isoformat(),
                    "available": sorted(rates),
                }
            )
        return record

    def fetch_bulletin(self, on_date: date) -> dict[str, RateRecord]:
        """All rates of the bulletin for `on_date`, downloaded at most once per run."""
        cached = self.bulletins.get(on_date)
        if cached is not None:
            return cached

        details = {"date": on_date.isoformat()}
        response = self._get(
            self.base_url,
            params={"date_req": on_date.strftime(CBR_REQUEST_DATE_FORMAT)},
            details=details,
        )
        rates = self.parse_bulletin(response.content, on_date)

        logger.info(f"CBR bulletin for {on_date}: {len(rates)} currencies")
        self.bulletins.put(on_date, rates)
        return rates

    def parse_bulletin(self, content: bytes, on_date: date) -> dict[str, RateRecord]:
        """
        Parse a ValCurs document.

        Every Valute must be complete; one broken entry fails the whole
        bulletin rather than silently dropping a currency.
        """
        details = {"date": on_date.isoformat()}
        if not content:
            raise MalformedResponseError(
                message="Response body is empty",
                provider=self.PROVIDER_NAME,
                details=details
            )

        try:
            # ElementTree honours the encoding declared in the XML prolog
            root = ET.fromstring(content)
        except (ET.ParseError, LookupError) as e:
            raise MalformedResponseError(
                message=f"XML parse error: {e}",
                provider=self.PROVIDER_NAME,
                details=details
            ) from e

        if root.tag != "ValCurs":
            raise MalformedResponseError(
                message=f"Unexpected root element: {root.tag}",
                provider=self.PROVIDER_NAME,
                details=details
            )

        rates: dict[str, RateRecord] = {}
        for valute in root.findall("Valute"):
            char_code = valute.findtext("CharCode")
            value = valute.findtext("Value")
            nominal = valute.findtext("Nominal")
            try:
                if not char_code:
                    raise ValueError("missing CharCode")
                record = RateRecord(
                    currency=char_code,
                    date=on_date,
                    raw_value=parse_decimal(value),
                    divisor=int(parse_decimal(nominal)),
                )
            except ValueError as e:
                # pydantic's ValidationError is a ValueError too
                raise MalformedResponseError(
                    message=f"Invalid Valute entry {char_code!r}: {e}",
                    provider=self.PROVIDER_NAME,
                    details={**details, "currency": char_code}
                ) from e
            rates[record.currency] = record

        return rates
