"""Coercion of timestamp-like values to epoch milliseconds."""
from datetime import date, datetime, time, timezone
from typing import Any
import math

from dateutil import parser as date_parser


def to_epoch_ms(value: Any) -> int:
    """
    Convert a timestamp-like value to integer epoch milliseconds.

    Accepts:
    - int/float: already epoch milliseconds
    - numeric strings: epoch milliseconds
    - other strings: parsed as dates (ISO-8601 or free-form)
    - datetime: naive values are taken as UTC
    - date: midnight UTC

    Raises:
        ValueError: If the value cannot be interpreted as a finite point in time
    """
    if isinstance(value, bool):
        raise ValueError("Boolean is not a timestamp")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return _float_to_ms(value)
    if isinstance(value, datetime):
        return _datetime_to_ms(value)
    if isinstance(value, date):
        return _datetime_to_ms(datetime.combine(value, time.min))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Empty timestamp string")
        try:
            number = float(text)
        except ValueError:
            return _parse_date_string(text)
        return _float_to_ms(number)
    raise ValueError(f"Unsupported timestamp type: {type(value).__name__}")


def _float_to_ms(value: float) -> int:
    if not math.isfinite(value):
        raise ValueError(f"Non-finite timestamp: {value}")
    return int(value)


def _parse_date_string(text: str) -> int:
    try:
        try:
            parsed = date_parser.isoparse(text)
        except ValueError:
            parsed = date_parser.parse(text)
    except OverflowError as exc:
        raise ValueError(f"Timestamp out of range: {text}") from exc
    return _datetime_to_ms(parsed)


def _datetime_to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        return _float_to_ms(value.timestamp() * 1000)
    except OverflowError as exc:
        raise ValueError(f"Timestamp out of range: {value}") from exc
