"""Date and value normalization for spreadsheet imports.

Spreadsheet tools store dates as day serials counted from 1899-12-31 and treat
1900 as a leap year, so every serial after 59 (1900-02-28) is one day ahead of
the real calendar. Serial 60 is the phantom 1900-02-29.
"""

import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional
from .models import DateConversionResult, ItemCodeValidation

logger = logging.getLogger(__name__)

EXCEL_SERIAL_DATE_OFFSET = 25568  # days from 1899-12-31 to 1970-01-01
MS_PER_DAY = 24 * 60 * 60 * 1000
UNIX_EPOCH = datetime(1970, 1, 1)

# Tried in order after ISO parsing fails. Day comes before month.
DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d-%m-%Y %H:%M:%S",
    "%d-%m-%Y %H:%M",
)

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")
_ITEM_CODE = re.compile(r"[A-Za-z0-9_-]+")
_WHITESPACE = re.compile(r"\s+")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_excel_serial_date(value: Any) -> bool:
    """Check if a value looks like a spreadsheet date serial (1 < value < 100000)."""
    if _is_number(value):
        return 1 < value < 100000
    return False


def convert_excel_serial_date(serial: float) -> datetime:
    """Convert a spreadsheet date serial to a datetime."""
    # Cancel the phantom 1900-02-29 for everything after 1900-02-28
    adjusted = serial - 1 if serial > 59 else serial
    unix_ms = (adjusted - EXCEL_SERIAL_DATE_OFFSET) * MS_PER_DAY
    return UNIX_EPOCH + timedelta(milliseconds=unix_ms)


def _parse_date_string(text: str) -> Optional[datetime]:
    try:
        return _naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def convert_to_date(value: Any) -> Optional[datetime]:
    """Convert a date, serial number, date string or ms timestamp to a datetime.

    Returns None for anything that cannot be read as a date.
    """
    # Zero is treated as an empty cell
    if value is None or value == "" or (_is_number(value) and value == 0):
        return None

    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time())

    if is_excel_serial_date(value):
        try:
            return convert_excel_serial_date(value)
        except (OverflowError, ValueError):
            logger.warning("Failed to convert spreadsheet serial date: %r", value)
            return None

    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        return _parse_date_string(trimmed)

    if _is_number(value):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        try:
            return UNIX_EPOCH + timedelta(milliseconds=value)
        except OverflowError:
            return None

    return None


def to_iso_date_string(value: Any) -> Optional[str]:
    """Convert a value to a YYYY-MM-DD string for storage."""
    converted = convert_to_date(value)
    return converted.date().isoformat() if converted else None


def is_valid_business_date(value: datetime, today: Optional[date] = None) -> bool:
    """Check the date lies between Jan 1 a century ago and Dec 31 next year."""
    today = today or date.today()
    earliest = date(today.year - 100, 1, 1)
    latest = date(today.year + 1, 12, 31)
    day = value.date() if isinstance(value, datetime) else value
    return earliest <= day <= latest


def _one_year_before(day: date) -> date:
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        # Feb 29 has no counterpart in the previous year
        return day.replace(year=day.year - 1, day=28)


def convert_and_validate_grn_date(value: Any, now: Optional[datetime] = None) -> DateConversionResult:
    """Convert a GRN date and collect advisory warnings.

    Warnings never make a converted date invalid; only a value that cannot be
    read as a date does.
    """
    converted = convert_to_date(value)
    if converted is None:
        return DateConversionResult(date=None, is_valid=False, warnings=["Invalid date format"])

    now = _naive_utc(now) if now else datetime.now()
    warnings = []

    if not is_valid_business_date(converted, today=now.date()):
        warnings.append("Date is outside reasonable business range")

    if converted > now:
        warnings.append("GRN date is in the future")

    one_year_ago = datetime.combine(_one_year_before(now.date()), time())
    if converted < one_year_ago:
        warnings.append("GRN date is more than 1 year old")

    return DateConversionResult(
        date=converted.date().isoformat(),
        is_valid=True,
        warnings=warnings,
    )


def clean_text_value(value: Any) -> str:
    """Trim a cell value to text. None becomes an empty string."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def to_number(value: Any) -> float:
    """Read a number from a cell, ignoring currency symbols and separators."""
    if _is_number(value):
        return value
    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        match = _LEADING_NUMBER.match(cleaned)
        if match:
            return float(match.group())
    return 0


def normalize_grn_number(value: Any) -> str:
    """Uppercase a GRN number and drop all whitespace."""
    cleaned = clean_text_value(value)
    if not cleaned:
        return ""
    return _WHITESPACE.sub("", cleaned.upper())


def validate_item_code(value: Any) -> ItemCodeValidation:
    """Normalize an item code and check it only uses letters, digits, _ and -."""
    cleaned = clean_text_value(value)
    if not cleaned:
        return ItemCodeValidation(code="", is_valid=False)

    is_valid = _ITEM_CODE.fullmatch(cleaned) is not None
    return ItemCodeValidation(
        code=cleaned.upper(),
        is_valid=is_valid,
        suggestions=None if is_valid else ["Check item code format"],
    )
