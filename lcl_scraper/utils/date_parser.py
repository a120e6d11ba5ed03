"""Dutch/English date and time parsing utilities.

Every parser returns ``None`` for input it cannot read; callers drop the
candidate instead of raising.
"""

import re
from datetime import date, timedelta

from dateutil import parser as dateutil_parser

# Plausible event years; anything outside is treated as format noise
MIN_YEAR = 2020
MAX_YEAR = 2030

MONTHS = {
    # Dutch
    "januari": 1,
    "februari": 2,
    "maart": 3,
    "mrt": 3,
    "mei": 5,
    "juni": 6,
    "juli": 7,
    "augustus": 8,
    "oktober": 10,
    "okt": 10,
    # English
    "january": 1,
    "february": 2,
    "march": 3,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "sept": 9,
    "october": 10,
    "november": 11,
    "december": 12,
    # German spellings seen on border-region sites
    "februar": 2,
    "märz": 3,
    "maerz": 3,
    "mai": 5,
    # Shared three-letter abbreviations
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "april": 4,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

WEEKDAYS = (
    "maandag|dinsdag|woensdag|donderdag|vrijdag|zaterdag|zondag"
    "|ma|di|wo|do|vr|za|zo"
    "|monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    "|mon|tue|wed|thu|fri|sat|sun"
)

# Only a bare relative word counts; "zaterdag morgen 18 juli" is a morning
RELATIVE_DAYS = {
    "vandaag": 0,
    "today": 0,
    "morgen": 1,
    "tomorrow": 1,
    "overmorgen": 2,
    "day after tomorrow": 2,
}

DAYPARTS = "ochtend|morgen|middag|namiddag|avond|nacht|morning|afternoon|evening|night"

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:$|[t\s])")  # input is lowercased
_RFC2822_RE = re.compile(
    r"^(?:[a-z]{3},\s*)?\d{1,2}\s+[a-z]{3}\s+\d{4}\s+\d{1,2}:\d{2}", re.IGNORECASE
)
_NUMERIC_RE = re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{4}|\d{2})\b")
_TEXTUAL_RE = re.compile(
    rf"^(?:(?:{WEEKDAYS})\.?,?\s+)?(?:(?:{DAYPARTS}),?\s+)?(\d{{1,2}})(?:e|ste|de|st|nd|rd|th)?\.?\s+"
    r"([a-zäë]+)\.?(?:,?\s+(\d{4}))?",
)
_TEXTUAL_MONTH_FIRST_RE = re.compile(
    rf"^(?:(?:{WEEKDAYS}),?\s+)?(?:(?:{DAYPARTS}),?\s+)?([a-z]+)\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?(?:\s+(\d{{4}}))?"
)

_TIME_PLACEHOLDER_RE = re.compile(r"\b(tbd|tba|nnb|all day|hele dag|de hele dag)\b")
_TIME_PREFIX_RE = re.compile(r"^(?:start|aanvang|begin|vanaf)\s*:?\s*")
_AMPM_RE = re.compile(r"\b(\d{1,2})(?:[:.](\d{2}))?\s*([ap])\.?m\.?(?![a-z])")
_24H_RE = re.compile(r"(?<![\d.\-/])(\d{1,2})[:.h](\d{2})(?![\d.\-/]\d)")
_ISO_TIME_RE = re.compile(r"T(\d{2}:\d{2})")


def lookup_month(name: str) -> int | None:
    """Map a month name or abbreviation to 1-12.

    Dots are ignored and unknown names fall back to their first three letters,
    so "sept." and "septembre" both resolve.
    """
    key = name.lower().replace(".", "").strip()
    if not key:
        return None
    return MONTHS.get(key) or MONTHS.get(key[:3])


def _in_window(year: int) -> bool:
    return MIN_YEAR <= year <= MAX_YEAR


def _build(year: int, month: int, day: int) -> date | None:
    if not _in_window(year):
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(text: str | None, reference: date | None = None) -> date | None:
    """Parse free-text date into a ``date``.

    Handles:
    - relative words: vandaag/today, morgen/tomorrow, overmorgen/day after tomorrow
    - ISO "2026-07-14" and "2026-07-14T20:00"
    - RFC 2822 "Tue, 14 Jul 2026 20:00:00 +0000"
    - European numeric "14-07-2026", "14/07/26"
    - textual "zondag 12 juli 2026", "12 mrt", "July 12, 2026"

    Args:
        text: Date text as found on the page
        reference: Date used for relative words and missing years (default: today)

    Returns:
        date, or None when unparseable or outside the plausible year window
    """
    if not text:
        return None

    value = " ".join(text.split()).lower()
    if not value:
        return None
    reference = reference or date.today()

    offset = RELATIVE_DAYS.get(value.rstrip(".!"))
    if offset is not None:
        return reference + timedelta(days=offset)

    match = _ISO_RE.match(value)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _build(year, month, day)

    if _RFC2822_RE.match(value):
        try:
            parsed = dateutil_parser.parse(value)
        except (ValueError, OverflowError):
            return None
        return parsed.date() if _in_window(parsed.year) else None

    match = _NUMERIC_RE.search(value)
    if match:
        day, month = int(match.group(1)), int(match.group(2))
        year_text = match.group(3)
        year = int(year_text)
        if len(year_text) == 2:
            year += reference.year // 100 * 100
        return _build(year, month, day)

    match = _TEXTUAL_RE.match(value)
    if match:
        month = lookup_month(match.group(2))
        if month:
            year = int(match.group(3)) if match.group(3) else reference.year
            return _build(year, month, int(match.group(1)))

    match = _TEXTUAL_MONTH_FIRST_RE.match(value)
    if match:
        month = lookup_month(match.group(1))
        if month:
            year = int(match.group(3)) if match.group(3) else reference.year
            return _build(year, month, int(match.group(2)))

    # Last resort for odd layouts, only when a year is present
    if re.search(r"\b\d{4}\b", value):
        try:
            parsed = dateutil_parser.parse(value, dayfirst=True, fuzzy=True)
        except (ValueError, OverflowError):
            return None
        return parsed.date() if _in_window(parsed.year) else None

    return None


def normalize_date(text: str | None, reference: date | None = None) -> str | None:
    """Parse free-text date into canonical ``YYYY-MM-DD`` (or None)."""
    parsed = parse_date(text, reference)
    return parsed.isoformat() if parsed else None


def parse_time(text: str | None) -> str | None:
    """Parse time text into ``HH:MM``.

    Handles "20:00", "20.00", "20h00", "8 PM", "8:30 pm" and prefixed
    forms like "Aanvang: 20.00". Placeholders ("TBD", "all day") yield None.
    """
    if not text:
        return None

    value = " ".join(text.split()).lower()
    if not value or _TIME_PLACEHOLDER_RE.search(value):
        return None
    value = _TIME_PREFIX_RE.sub("", value)

    match = _AMPM_RE.search(value)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if not (1 <= hour <= 12 and 0 <= minute <= 59):
            return None
        if match.group(3) == "p" and hour != 12:
            hour += 12
        elif match.group(3) == "a" and hour == 12:
            hour = 0
        return f"{hour:02d}:{minute:02d}"

    match = _24H_RE.search(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            return f"{hour:02d}:{minute:02d}"

    return None


def time_from_iso(value: str | None) -> str | None:
    """Pull ``HH:MM`` out of an ISO datetime string such as "2026-07-14T20:00"."""
    if not value:
        return None
    match = _ISO_TIME_RE.search(value)
    return match.group(1) if match else None

