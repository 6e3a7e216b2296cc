"""Date helpers shared by coupon, RFQ and quote expiry checks."""
from datetime import date, datetime
from typing import Optional, Union

DateLike = Union[datetime, date, str]


def _naive(value: datetime) -> datetime:
    """Drop tzinfo after converting aware datetimes to local time."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_date_like(value: DateLike) -> Union[datetime, date]:
    """
    Parse an expiry value into a date or datetime.

    Accepts datetime/date objects as-is and ISO-8601 strings:
    - '2026-12-31' -> date(2026, 12, 31)
    - '2026-12-31T10:00:00Z' -> datetime (converted to local naive time)

    Raises:
        ValueError: if the string is not ISO-8601.
        TypeError: if the value is not a date, datetime or string.
    """
    if isinstance(value, datetime):
        return _naive(value)
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return date.fromisoformat(text)
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        return _naive(datetime.fromisoformat(text))
    raise TypeError(f'Unsupported date value: {value!r}')


def has_passed(value: DateLike, now: Optional[datetime] = None) -> bool:
    """
    Check whether an expiry moment is in the past.

    A date without time stays valid for the whole of that day.
    """
    now = _naive(now) if now else datetime.now()
    parsed = parse_date_like(value)

    if isinstance(parsed, datetime):
        return parsed < now
    return now.date() > parsed
