"""Date normalization shared by the type-specific extractors.

Every extractor stores either an ISO ``YYYY-MM-DD`` string or ``None``;
the raw text a date was parsed from is kept separately by the caller.
"""

import re
from datetime import date, datetime

from dateutil import parser as date_parser

from batchdoc.utils.logger import get_logger

logger = get_logger(__name__)

_MONTHS = {
    name: number
    for number, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}

_MONTH = r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?"

_LABEL_PREFIX = re.compile(
    r"^(?:date\s+of\s+issue|best\s+before|use\s+by|valid\s+(?:until|through|till)"
    r"|expiration|expiry|expires|exp|mfg|mfd|manufactured|production"
    r"|issued|issue|test)\s*(?:date)?\s*[:\-]?\s*",
    re.IGNORECASE,
)

_YMD = re.compile(r"\b(\d{4})[.\-/](\d{1,2})[.\-/](\d{1,2})\b")
_NUMERIC_MDY = re.compile(r"\b(\d{1,2})[.\-/](\d{1,2})[.\-/](\d{4}|\d{2})\b")
_MONTH_DAY_YEAR = re.compile(r"\b" + _MONTH + r"\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})", re.IGNORECASE)
_DAY_MONTH_YEAR = re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)?\s+" + _MONTH + r",?\s+(\d{4})", re.IGNORECASE)
_FOUR_DIGIT_YEAR = re.compile(r"\b\d{4}\b")

# Fills fields a free-form date leaves out (e.g. the day in "March 2024").
_DEFAULT_DATETIME = datetime(2000, 1, 1)


def _build(year: int, month: int, day: int) -> str | None:
    if year < 100:
        year += 2000
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _literal_candidates(text: str) -> list[tuple[int, int, int]]:
    """Collect (year, month, day) readings from the date-literal patterns, in order."""
    candidates: list[tuple[int, int, int]] = []

    if match := _YMD.search(text):
        candidates.append((int(match[1]), int(match[2]), int(match[3])))

    if match := _NUMERIC_MDY.search(text):
        first, second, year = int(match[1]), int(match[2]), int(match[3])
        candidates.append((year, first, second))
        candidates.append((year, second, first))

    if match := _MONTH_DAY_YEAR.search(text):
        candidates.append((int(match[3]), _MONTHS[match[1].lower()[:3]], int(match[2])))

    if match := _DAY_MONTH_YEAR.search(text):
        candidates.append((int(match[3]), _MONTHS[match[2].lower()[:3]], int(match[1])))

    return candidates


def strip_label(raw: str) -> str:
    """Remove a leading ``mfg:``/``expiry date:``-style label from a date string."""
    return _LABEL_PREFIX.sub("", raw.strip()).strip()


def parse_date(raw: str | None) -> str | None:
    """Normalize a matched date string to ISO ``YYYY-MM-DD``.

    Date-literal patterns are tried first (year-month-day, month/day/year
    then day/month/year, "Month D, YYYY", "D Month YYYY"). Strings that
    still carry a four digit year are then handed to dateutil.

    Args:
        raw: Text containing a date, optionally prefixed by a label.

    Returns:
        The ISO date, or ``None`` if no valid calendar date was found.
    """
    if not raw:
        return None

    cleaned = strip_label(raw)
    for year, month, day in _literal_candidates(cleaned):
        parsed = _build(year, month, day)
        if parsed:
            return parsed

    if not _FOUR_DIGIT_YEAR.search(cleaned):
        return None

    try:
        return date_parser.parse(cleaned, fuzzy=True, default=_DEFAULT_DATETIME).date().isoformat()
    except (ValueError, OverflowError):
        logger.debug("Could not parse date from %r", raw)
        return None
