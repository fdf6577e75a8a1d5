from __future__ import annotations

import re
from datetime import datetime
from typing import Any

import pandas as pd

"""Cell value normalization helpers shared by the row and item parsers.

Spreadsheet cells are typed by hand: full-width digits, phone numbers with
dashes/spaces, amounts like "NT$1,200" and zh-TW timestamps such as
"2024/1/5 下午 3:20:00" (Google Forms) are all expected.
"""

__all__ = [
    "normalize_phone",
    "to_half_width_digits",
    "extract_numbers",
    "parse_amount",
    "parse_date",
    "cell_text",
]

_FULL_WIDTH_DIGITS = str.maketrans("０１２３４５６７８９", "0123456789")
_NON_DIGIT = re.compile(r"[^0-9]")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_LEADING_NUMBER = re.compile(r"^[+-]?\d+(?:\.\d+)?")
_CURRENCY_PREFIX = re.compile(r"^(?:NT\$|\$)\s*")
# 「日期 上午/下午 時間」→「日期 時間 AM/PM」
_ZH_MERIDIEM = re.compile(r"^(?P<date>.+?)\s*(?P<mer>上午|下午)\s*(?P<time>\d{1,2}:\d{2}(?::\d{2})?)$")


def cell_text(value: Any) -> str:
    """Trimmed string form of a cell; None becomes ""."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_phone(value: Any) -> str:
    """Keep digits only: "09-1234-5678" -> "0912345678"."""
    return _NON_DIGIT.sub("", to_half_width_digits(cell_text(value)))


def to_half_width_digits(text: str) -> str:
    return text.translate(_FULL_WIDTH_DIGITS)


def extract_numbers(text: str) -> list[float]:
    """All unsigned numbers in the text, after full-width normalization."""
    return [float(m) for m in _NUMBER.findall(to_half_width_digits(text))]


def parse_amount(value: Any) -> float:
    """Leading numeric value of an amount cell ("1,200元" -> 1200.0), else 0."""
    text = to_half_width_digits(cell_text(value)).replace(",", "")
    text = _CURRENCY_PREFIX.sub("", text)
    m = _LEADING_NUMBER.match(text)
    if m is None:
        return 0.0
    return float(m.group())


def parse_date(value: Any) -> datetime | None:
    """Permissive date parsing; None when the cell is empty or unparsable."""
    text = to_half_width_digits(cell_text(value))
    if not text:
        return None
    m = _ZH_MERIDIEM.match(text)
    if m is not None:
        meridiem = "AM" if m.group("mer") == "上午" else "PM"
        text = f"{m.group('date')} {m.group('time')} {meridiem}"
    try:
        ts = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()
