"""Date parsing utilities."""

import re
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

TWO_DIGIT_YEAR_PIVOT = 70

MONTH_ABBREVIATIONS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

MONTH_NAME_PATTERN = (
    r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)

# Date tokens as they appear inside ledger rows, most specific first.
DATE_TOKEN_RE = re.compile(
    r"(?<!\d)("
    r"\d{4}-\d{1,2}-\d{1,2}"
    r"|\d{1,2}/\d{1,2}/(?:\d{4}|\d{2})"
    r"|\d{1,2}-\d{1,2}-(?:\d{4}|\d{2})"
    r"|\d{1,2}\.\d{1,2}\.\d{4}"
    r")(?!\d)"
)

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_DASH_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2}|\d{4})$")
_DOTTED_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_MONTH_NAME_RE = re.compile(
    rf"^{MONTH_NAME_PATTERN}\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})$", re.IGNORECASE
)


def expand_year(year: int) -> int:
    """Expand a two-digit year using the 70 pivot (>=70 is 19xx, else 20xx)."""
    if year >= 100:
        return year
    return 1900 + year if year >= TWO_DIGIT_YEAR_PIVOT else 2000 + year


def safe_date(year: int, month: int, day: int) -> Optional[date]:
    """Build a date, returning None for impossible combinations like Feb 30."""
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_ledger_date(token: Optional[str]) -> Optional[date]:
    """Parse a date token found in a ledger row.

    Accepted forms:
    - ISO "2025-08-14"
    - slash "08/14/2025" or "14/08/2025" (a value above 12 must be the day)
    - dash "08-14-2025"
    - dotted "14.08.2025" (day first)
    - month name "Aug 14, 2025"

    Two-digit years pivot at 70. Unparseable or impossible dates return None
    rather than an approximate guess.

    Args:
        token: Raw date token

    Returns:
        Date object or None
    """
    if token is None:
        return None
    s = token.strip()
    if not s:
        return None

    match = _ISO_RE.match(s)
    if match:
        return safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _SLASH_RE.match(s)
    if match:
        first, second = int(match.group(1)), int(match.group(2))
        year = expand_year(int(match.group(3)))
        month, day = first, second
        if first > 12 and second <= 12:
            day, month = first, second
        return safe_date(year, month, day)

    match = _DASH_RE.match(s)
    if match:
        return safe_date(
            expand_year(int(match.group(3))), int(match.group(1)), int(match.group(2))
        )

    match = _DOTTED_RE.match(s)
    if match:
        return safe_date(int(match.group(3)), int(match.group(2)), int(match.group(1)))

    match = _MONTH_NAME_RE.match(s)
    if match:
        month = MONTH_ABBREVIATIONS[match.group(1)[:3].lower()]
        return safe_date(int(match.group(3)), month, int(match.group(2)))

    return None


def find_date_token(text: str) -> Optional[tuple[str, date]]:
    """Locate the first parseable date token in a line of text.

    Returns:
        Tuple of (matched token, parsed date) or None
    """
    for match in DATE_TOKEN_RE.finditer(text):
        parsed = parse_ledger_date(match.group(1))
        if parsed is not None:
            return match.group(1), parsed
    return None


def month_start(value: date) -> date:
    """Return the first day of the month containing value."""
    return value.replace(day=1)


def previous_month(value: date) -> date:
    """Return the first day of the month before value's month."""
    return month_start(value) - relativedelta(months=1)


def same_month(a: date, b: date) -> bool:
    return a.year == b.year and a.month == b.month


def month_label(value: date) -> str:
    """Format a month as YYYY-MM."""
    return f"{value.year:04d}-{value.month:02d}"


def _relative_date(word: str, today: date) -> Optional[date]:
    """Resolve "today", "yesterday", "end of last month" and similar words."""
    if word == "today":
        return today
    if word == "yesterday":
        return today - timedelta(days=1)
    if word in ("start of month", "this month"):
        return month_start(today)
    if word in ("end of last month", "last month end"):
        return month_start(today) - timedelta(days=1)
    if word == "last month":
        return previous_month(today)
    return None


def parse_date(date_str: str) -> date:
    """Parse a date typed on the command line.

    A few relative words are accepted for --as-of. Ledger forms ("08/14/2025",
    "14.08.2025", "Aug 14, 2025") follow the same rules as dates inside a
    statement, and anything else goes to dateutil.

    Args:
        date_str: Date string in various formats

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    text = date_str.strip().lower()

    relative = _relative_date(text, date.today())
    if relative is not None:
        return relative

    parsed = parse_ledger_date(text)
    if parsed is not None:
        return parsed

    try:
        dt: datetime = date_parser.parse(text)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str.strip()}': {e}")
    return dt.date()
