"""
Rate Normalizer

Converts provider-native values (decimal-comma strings, nominal/value pairs,
provider date formats) into canonical form, and renders RateRecords for
display. Cached and live records go through the same `to_row`.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ratecache.models import CACHE_KEY_DATE_FORMAT, RateRecord, RateRow

OUTPUT_DATE_FORMAT = CACHE_KEY_DATE_FORMAT
DISPLAY_QUANTUM = Decimal("0.01")
PROVIDER_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def parse_decimal(text: str | None) -> Decimal:
    """
    Parse a provider number, accepting a decimal comma ("91,0000").

    Raises:
        ValueError: If the text is empty or not a finite number
    """
    if text is None or not text.strip():
        raise ValueError("empty numeric value")
    try:
        value = Decimal(text.strip().replace(",", "."))
    except InvalidOperation as e:
        raise ValueError(f"invalid numeric value: {text!r}") from e
    if not value.is_finite():
        raise ValueError(f"invalid numeric value: {text!r}")
    return value


def parse_provider_date(text: str) -> date:
    """Parse the JSON feed's observation date ("2024-01-10T00:00:00")."""
    try:
        return datetime.strptime(text.strip(), PROVIDER_DATETIME_FORMAT).date()
    except ValueError as e:
        raise ValueError(f"unrecognized date: {text!r}") from e


def effective_rate(raw_value: Decimal, divisor: int) -> Decimal:
    """Quoted value divided by the nominal."""
    if divisor < 1:
        raise ValueError(f"divisor must be >= 1, got {divisor}")
    return raw_value / Decimal(divisor)


def format_amount(value: Decimal) -> str:
    return str(value.quantize(DISPLAY_QUANTUM, rounding=ROUND_HALF_UP))


def format_date(value: date) -> str:
    return value.strftime(OUTPUT_DATE_FORMAT)


def to_row(record: RateRecord) -> RateRow:
    """Render a record as [DD.MM.YYYY, CODE, rate(, delta)]."""
    return RateRow(
        date=format_date(record.date),
        currency=record.currency.upper(),
        rate=format_amount(effective_rate(record.raw_value, record.divisor)),
        delta=format_amount(record.delta) if record.delta is not None else None,
    )
