"""
ratecache Data Models

RateRecord is stored exactly as the provider reported it (raw value plus
nominal divisor). The per-unit rate is derived on every read.
"""

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

CACHE_KEY_DATE_FORMAT = "%d.%m.%Y"


class RateRecord(BaseModel):
    """
    Canonical result of a successful rate lookup.

    raw_value is quoted per `divisor` units of foreign currency, e.g.
    UAH is quoted per 10 units: raw_value=Decimal('22.85'), divisor=10.
    """
    model_config = ConfigDict(frozen=True)

    currency: str = Field(min_length=1, description="Lowercase currency code")
    date: date
    raw_value: Decimal = Field(gt=Decimal("0"))
    divisor: int = Field(default=1, ge=1)
    delta: Decimal | None = Field(
        default=None,
        description="Change versus previous period (only some providers report it)"
    )

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("raw_value", "delta", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal | None:
        """Floats go through str so binary noise never reaches the cache."""
        if v is None or isinstance(v, Decimal):
            return v
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @property
    def effective_rate(self) -> Decimal:
        """Rate per one unit of foreign currency."""
        return self.raw_value / Decimal(self.divisor)

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "RateRecord":
        return cls.model_validate_json(payload)


class RateRow(BaseModel):
    """Display form of a RateRecord: one line of tabular output."""
    model_config = ConfigDict(frozen=True)

    date: str
    currency: str
    rate: str
    delta: str | None = None

    def as_list(self) -> list[str]:
        row = [self.date, self.currency, self.rate]
        if self.delta is not None:
            row.append(self.delta)
        return row


def cache_key(on_date: date, currency: str) -> str:
    """
    Build the cache key "<DD.MM.YYYY>-<currency>".

    The date part always has a fixed width, so distinct (date, currency)
    pairs never map to the same key.
    """
    return f"{on_date.strftime(CACHE_KEY_DATE_FORMAT)}-{currency.strip().lower()}"
