"""Release and premiere date parsing."""
from __future__ import annotations

import re
from datetime import date, datetime

from .text import clean_text

MIN_YEAR = 1900
MAX_YEAR = 2100

# strptime accepts both padded and unpadded month/day values for these.
DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y年%m月%d日",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%Y-%m",
    "%Y年%m月",
    "%Y",
)

YEAR_RE = re.compile(r"(\d{4})")


def _in_range(year: int) -> bool:
    return MIN_YEAR <= year <= MAX_YEAR


def parse_date(value: str | None) -> date | None:
    """Parse a display date such as ``2025-01-07(中国大陆)`` or ``2025年1月7日``.

    Falls back to January 1st of the first four-digit year found. Dates whose
    year lies outside 1900..2100 are rejected.
    """

    if not value:
        return None

    text = clean_text(value)
    # "2025-01-07(中国大陆) / 2025-02-01(美国)" -> first entry, region dropped
    text = text.split(" / ")[0]
    for bracket in ("(", "（"):
        if bracket in text:
            text = text[: text.index(bracket)]
    text = text.strip()
    if not text:
        return None

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt).date()
        except ValueError:
            continue
        if _in_range(parsed.year):
            return parsed

    match = YEAR_RE.search(text)
    if match:
        year = int(match.group(1))
        if _in_range(year):
            return date(year, 1, 1)
    return None
