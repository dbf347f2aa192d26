"""
Value normalization and display formatting per base type.

Stored values are kept in a normal form (dates as YYYYMMDD, date-times as unix
timestamps, booleans as '1' or '') and formatted for display on the way out.
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Optional

from ..constants import BaseType, NUMERIC_TYPES
from ..errors import InvalidArgument

ISO_DATE = re.compile(r"^(\d{4})[-/.]?(\d{2})[-/.]?(\d{2})")
DATE_PARTS = re.compile(r"[/., ]")
FALSE_WORDS = {"", "0", "false", "-1", "no", "off"}


def _base(type_id: int) -> Optional[BaseType]:
    try:
        return BaseType(int(type_id))
    except ValueError:
        return None


def _clean_number(raw: str) -> str:
    return raw.replace(",", ".").replace(" ", "").replace("\u00a0", "")


def _finite(raw: str) -> float:
    number = float(_clean_number(raw))
    if not math.isfinite(number):
        raise ValueError(f"non-finite number {raw!r}")
    return number


def _normalize_date(raw: str) -> str:
    match = ISO_DATE.match(raw)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        parts = [p for p in DATE_PARTS.split(raw) if p]
        if len(parts) != 3 or not all(p.isdigit() for p in parts):
            raise InvalidArgument(f"Unrecognized date: {raw!r}")
        day, month, year = int(parts[0]), int(parts[1]), int(parts[2])
        if len(parts[2]) <= 2:
            year += 2000
    try:
        return date(year, month, day).strftime("%Y%m%d")
    except ValueError as e:
        raise InvalidArgument(f"Invalid date {raw!r}: {e}") from e


def _normalize_datetime(raw: str) -> str:
    if raw.isdigit() and int(raw) > 10000:
        return raw
    for candidate in (raw, raw.replace(" ", "T")):
        try:
            parsed = datetime.fromisoformat(candidate)
            break
        except ValueError:
            continue
    else:
        try:
            parsed = datetime.strptime(raw, "%d.%m.%Y %H:%M:%S")
        except ValueError as e:
            raise InvalidArgument(f"Unrecognized date-time: {raw!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return str(int(parsed.timestamp()))


def normalize_value(type_id: int, raw) -> str:
    """
    Convert user input into the stored normal form for a base type.

    Args:
        type_id: Base type of the field or instance
        raw: Input value

    Returns:
        The text to store

    Raises:
        InvalidArgument: If the value cannot be read as the base type
    """
    if raw is None:
        return ""
    raw = str(raw).strip() if not isinstance(raw, bool) else ("1" if raw else "")
    base = _base(type_id)
    if base is None or raw == "":
        return raw

    if base is BaseType.DATE:
        return _normalize_date(raw)
    if base is BaseType.DATETIME:
        return _normalize_datetime(raw)
    if base is BaseType.NUMBER:
        try:
            return str(int(_finite(raw)))
        except (ValueError, OverflowError) as e:
            raise InvalidArgument(f"Not a number: {raw!r}") from e
    if base is BaseType.SIGNED:
        try:
            number = _finite(raw)
        except ValueError as e:
            raise InvalidArgument(f"Not a decimal: {raw!r}") from e
        return str(int(number)) if number.is_integer() else repr(number)
    if base is BaseType.BOOLEAN:
        return "" if raw.lower() in FALSE_WORDS else "1"
    return raw


def format_value(type_id: int, stored) -> str:
    """
    Format a stored value for display.

    Args:
        type_id: Base type of the value
        stored: Stored text

    Returns:
        Display text; empty for empty input
    """
    if stored is None or stored == "":
        return ""
    stored = str(stored)
    base = _base(type_id)

    if base is BaseType.DATE:
        if len(stored) == 8 and stored.isdigit():
            return f"{stored[6:8]}.{stored[4:6]}.{stored[0:4]}"
        return stored
    if base is BaseType.DATETIME:
        if stored.lstrip("-").isdigit():
            moment = datetime.fromtimestamp(int(stored), tz=timezone.utc)
            return moment.strftime("%d.%m.%Y %H:%M:%S")
        return stored
    if base is BaseType.BOOLEAN:
        return "X" if stored != "0" else ""
    if base is BaseType.PWD:
        return "******"
    return stored


def column_align(type_id: int) -> str:
    """Return the display alignment for a base type."""
    base = _base(type_id)
    if base in (BaseType.PWD, BaseType.DATE, BaseType.BOOLEAN):
        return "CENTER"
    if base in NUMERIC_TYPES:
        return "RIGHT"
    return "LEFT"


def is_numeric(type_id: int) -> bool:
    return _base(type_id) in NUMERIC_TYPES


def to_number(stored) -> Optional[float]:
    """Read a stored numeric value; None when it is empty or not a number."""
    if stored is None or stored == "":
        return None
    try:
        return _finite(str(stored))
    except ValueError:
        return None
