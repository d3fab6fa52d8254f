"""
Cell coercion for the import pipeline.

Source sheets come from the Vietnamese market: dates are day-first and
numbers may use a dot for thousands and a comma for decimals.
"""
import math
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

import pandas as pd

from refdata.domain.imports.errors import InvalidDate, InvalidValue, MissingKey

# Spreadsheet serial day zero (accounts for the 1900 leap-year bug).
EXCEL_EPOCH = date(1899, 12, 30)
MAX_EXCEL_SERIAL = 2958465  # 9999-12-31

_DATE_SPLIT_RE = re.compile(r"[/\-.]")
_SERIAL_RE = re.compile(r"^\d+(\.\d+)?$")


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return False


def _from_excel_serial(serial: float, raw: Any, field: Optional[str]) -> date:
    if serial <= 0 or serial > MAX_EXCEL_SERIAL:
        raise InvalidDate(raw, field)
    return EXCEL_EPOCH + timedelta(days=int(serial))


def _parse_day_first(text: str) -> Optional[date]:
    parts = _DATE_SPLIT_RE.split(text)
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return None

    day, month, year = (int(part) for part in parts)
    if len(parts[2]) <= 2:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def coerce_date(value: Any, field: Optional[str] = None) -> date:
    """
    Convert a cell to a calendar date.

    Accepts native dates/timestamps, spreadsheet serial numbers, ISO-8601
    strings, and day/month/year strings separated by ``/``, ``-`` or ``.``.
    ISO is tried before day-first so ``2024-01-15`` is never read as D-M-Y.

    Raises:
        InvalidDate: when no accepted format matches.
    """
    if is_missing(value):
        raise InvalidDate(value, field)

    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if isinstance(value, bool):
        raise InvalidDate(value, field)
    if isinstance(value, (int, float, Decimal)):
        return _from_excel_serial(float(value), value, field)

    text = str(value).strip()

    if not _SERIAL_RE.match(text):
        try:
            return pd.to_datetime(text, format="ISO8601").date()
        except (ValueError, TypeError, OverflowError):
            pass

    parsed = _parse_day_first(text)
    if parsed is not None:
        return parsed

    if _SERIAL_RE.match(text):
        return _from_excel_serial(float(text), value, field)

    raise InvalidDate(value, field)


def clean_number_text(text: str) -> str:
    """
    Normalize a localized number string to a plain float literal.

    ``1.234,56`` -> ``1234.56``; ``1.234.567`` -> ``1234567``; ``3.45`` is left
    alone because a lone dot without a comma is a decimal point.
    """
    cleaned = text.strip().replace("\xa0", "").replace(" ", "")
    if "," in cleaned or cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")
    return cleaned.replace(",", ".", 1)


def coerce_decimal(value: Any) -> Optional[float]:
    """Return a float, or ``None`` when the cell is empty or not a number."""
    if is_missing(value) or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        result = float(value)
        return None if math.isnan(result) or math.isinf(result) else result

    try:
        result = float(clean_number_text(str(value)))
    except ValueError:
        return None
    return None if math.isnan(result) or math.isinf(result) else result


def coerce_symbol(value: Any, field: str = "symbol", max_length: Optional[int] = None) -> str:
    if is_missing(value):
        raise MissingKey(field, value)

    if isinstance(value, float) and value.is_integer():
        value = int(value)
    symbol = str(value).strip().upper()
    if not symbol:
        raise MissingKey(field, value)
    if max_length is not None and len(symbol) > max_length:
        raise InvalidValue(field, value, f"longer than {max_length} characters")
    return symbol


def coerce_integer(value: Any, field: str) -> int:
    if is_missing(value):
        raise MissingKey(field, value)
    if isinstance(value, bool):
        raise InvalidValue(field, value, "not an integer")

    try:
        number = float(str(value).strip()) if not isinstance(value, (int, float)) else float(value)
    except ValueError:
        raise InvalidValue(field, value, "not an integer")
    if math.isnan(number) or not number.is_integer():
        raise InvalidValue(field, value, "not an integer")
    return int(number)


def coerce_text(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    if is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if max_length is not None:
        text = text[:max_length]
    return text or None
