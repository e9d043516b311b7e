"""
Central Bank of Russia weekly feed (JSON)

One request per currency, addressed by CBR's internal currency id:
    GET /cursonweek/?DT=&val_id=R01235&_=1704880000000
    [{"date": "2024-01-09T00:00:00", "curs": 90.4, "diff": -0.6},
     {"date": "2024-01-10T00:00:00", "curs": 91.0, "diff": 0.6}]
The latest observation on or before the requested date is used; for today
that is the last element. Unlike the XML bulletin this feed
reports the change versus the previous day.
"""

import logging
import time
from datetime import date
from decimal import Decimal
from typing import Any, Callable

import httpx

from ratecache.models import RateRecord
from ratecache.normalizer import parse_decimal, parse_provider_date
from ratecache.providers.base import (
    BaseRateProvider,
    MalformedResponseError,
    UnknownCurrencyError,
)

logger = logging.getLogger(__name__)


class CbrJsonProvider(BaseRateProvider):
    """Rates from the CBR single-currency JSON feed."""

    PROVIDER_NAME = "cbr_json"

    # code -> (CBR internal id, nominal)
    CURRENCY_CODES: dict[str, tuple[str, int]] = {
        "usd": ("R01235", 1),
        "eur": ("R01239", 1),
        "uah": ("R01720", 10),
    }

    def __init__(
        self,
        client: httpx.Client,
        base_url: str,
        clock: Callable[[], float] = time.time
    ):
        super().__init__(client)
        self.base_url = base_url
        self.clock = clock

    def fetch_rate(self, currency: str, on_date: date) -> RateRecord:
        code = currency.strip().lower()
        details = {"currency": currency, "date": on_date.isoformat()}

        if code not in self.CURRENCY_CODES:
            raise UnknownCurrencyError(
                message=f"unknown currency '{currency}'",
                provider=self.PROVIDER_NAME,
                details={**details, "available": sorted(self.CURRENCY_CODES)}
            )
        val_id, nominal = self.CURRENCY_CODES[code]

        response = self._get(
            self.base_url,
            params={
                "DT": "",
                "val_id": val_id,
                # cache-busting timestamp, milliseconds
                "_": str(int(self.clock() * 1000)),
            },
            details=details,
        )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                message=f"JSON parse error: {e}",
                provider=self.PROVIDER_NAME,
                details=details
            ) from e

        record = self._parse_observation(code, nominal, data, on_date, details)
        logger.info(f"CBR JSON rate for {code} on {record.date}: {record.raw_value}")
        return record

    def _parse_observation(
        self,
        code: str,
        nominal: int,
        data: Any,
        on_date: date,
        details: dict[str, Any]
    ) -> RateRecord:
        """
        Pick the latest observation dated on or before `on_date`.

        For today's date this is the last element. Observations after
        `on_date` are ignored so a past date is never answered with a later
        day's rate.
        """
        if not isinstance(data, list) or not data:
            raise MalformedResponseError(
                message="Expected a non-empty JSON array",
                provider=self.PROVIDER_NAME,
                details=details
            )

        records = [
            self._to_record(code, nominal, observation, details)
            for observation in data
        ]
        eligible = [r for r in records if r.date <= on_date]
        if not eligible:
            raise MalformedResponseError(
                message=f"No observation on or before {on_date.isoformat()}",
                provider=self.PROVIDER_NAME,
                details={**details, "dates": [r.date.isoformat() for r in records]}
            )
        return max(eligible, key=lambda r: r.date)

    def _to_record(
        self,
        code: str,
        nominal: int,
        observation: Any,
        details: dict[str, Any]
    ) -> RateRecord:
        if (
            not isinstance(observation, dict)
            or "curs" not in observation
            or "date" not in observation
        ):
            raise MalformedResponseError(
                message="Invalid response: missing 'date' or 'curs' field",
                provider=self.PROVIDER_NAME,
                details={**details, "observation": observation}
            )

        try:
            diff = observation.get("diff")
            return RateRecord(
                currency=code,
                date=parse_provider_date(str(observation["date"])),
                raw_value=self._to_decimal(observation["curs"]),
                divisor=int(observation.get("nominal") or nominal),
                delta=self._to_decimal(diff) if diff is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(
                message=f"Invalid observation: {e}",
                provider=self.PROVIDER_NAME,
                details={**details, "observation": observation}
            ) from e

    @staticmethod
    def _to_decimal(value: Any) -> Decimal:
        """Numbers go through str, never straight from float."""
        if isinstance(value, Decimal):
            return value
        if isinstance(value, bool):
            raise ValueError(f"not a number: {value!r}")
        return parse_decimal(str(value))
