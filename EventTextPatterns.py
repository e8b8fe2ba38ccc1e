# EventTextPatterns.py

import re
import html as html_lib
from dataclasses import dataclass
from datetime import date
from typing import Iterator, List, Optional

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, ProcessingInstruction

MONTH_NAMES = [
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december',
]

# "jan(?:uary)?|feb(?:ruary)?|..." accepts both abbreviations and full names, plus "Sept"
MONTH_ALTERNATION = '|'.join(
    'sep(?:t(?:ember)?|tember)?' if m == 'september' else f"{m[:3]}(?:{m[3:]})?"
    for m in MONTH_NAMES
)

# Month D[-D][ (Weekday)][, YYYY]
DATE_PATTERN = re.compile(
    rf"\b({MONTH_ALTERNATION})\.?\s+(\d{{1,2}})(?!\d)"
    rf"(?:\s*(?:-|–|—|to)\s*(\d{{1,2}})(?!\d))?"
    rf"(?:\s*\([^)]+\))?"
    rf"(?:,\s*(\d{{4}}))?",
    re.IGNORECASE,
)

# Month D[, YYYY] - Month D[, YYYY]
CROSS_MONTH_DATE_PATTERN = re.compile(
    rf"\b({MONTH_ALTERNATION})\.?\s+(\d{{1,2}})(?!\d)(?:,?\s*(\d{{4}}))?"
    rf"\s*(?:-|–|—|to)\s*"
    rf"({MONTH_ALTERNATION})\.?\s+(\d{{1,2}})(?!\d)(?:,?\s*(\d{{4}}))?",
    re.IGNORECASE,
)

YEAR_PATTERN = re.compile(r'\b(20\d{2})\b')

CITY_WORDS = r"[A-Z][A-Za-z&'.\-]+(?:\s+[A-Z][A-Za-z&'.\-]+)*"

# City, ST
CITY_STATE_PATTERN = re.compile(rf"({CITY_WORDS}),\s*([A-Z]{{2}})\b")

# City, Statename
SPELLED_STATE_PATTERN = re.compile(rf"({CITY_WORDS}),\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){{0,2}})\b")

STATE_NAME_TO_ABBR = {
    'alabama': 'AL', 'alaska': 'AK', 'arizona': 'AZ', 'arkansas': 'AR', 'california': 'CA',
    'colorado': 'CO', 'connecticut': 'CT', 'delaware': 'DE', 'florida': 'FL', 'georgia': 'GA',
    'hawaii': 'HI', 'idaho': 'ID', 'illinois': 'IL', 'indiana': 'IN', 'iowa': 'IA',
    'kansas': 'KS', 'kentucky': 'KY', 'louisiana': 'LA', 'maine': 'ME', 'maryland': 'MD',
    'massachusetts': 'MA', 'michigan': 'MI', 'minnesota': 'MN', 'mississippi': 'MS',
    'missouri': 'MO', 'montana': 'MT', 'nebraska': 'NE', 'nevada': 'NV', 'new hampshire': 'NH',
    'new jersey': 'NJ', 'new mexico': 'NM', 'new york': 'NY', 'north carolina': 'NC',
    'north dakota': 'ND', 'ohio': 'OH', 'oklahoma': 'OK', 'oregon': 'OR', 'pennsylvania': 'PA',
    'rhode island': 'RI', 'south carolina': 'SC', 'south dakota': 'SD', 'tennessee': 'TN',
    'texas': 'TX', 'utah': 'UT', 'vermont': 'VT', 'virginia': 'VA', 'washington': 'WA',
    'west virginia': 'WV', 'wisconsin': 'WI', 'wyoming': 'WY', 'district of columbia': 'DC',
}

STATE_ABBREVIATIONS = frozenset(STATE_NAME_TO_ABBR.values())

EVIDENCE_MAX_LENGTH = 160

_SKIPPED_TEXT_PARENTS = {'script', 'style', 'noscript', 'template'}
_NON_TEXT_NODES = (Comment, Declaration, Doctype, ProcessingInstruction)


@dataclass(frozen=True)
class DateSpan:
    start: date
    end: date
    evidence: str


def month_index(token: str) -> Optional[int]:
    """1-based month number for a full or abbreviated English month name."""
    prefix = token.strip().lower().rstrip('.')[:3]
    for i, name in enumerate(MONTH_NAMES):
        if name.startswith(prefix) and len(prefix) == 3:
            return i + 1
    return None


def normalize_state(token: Optional[str]) -> Optional[str]:
    """Return the USPS code for an abbreviation or full state name, else None."""
    if not token:
        return None
    cleaned = collapse_whitespace(token).rstrip('.')
    # Codes must be upper-case so words like "In" or "Me" are not read as states
    if len(cleaned) == 2:
        return cleaned if cleaned in STATE_ABBREVIATIONS else None
    return STATE_NAME_TO_ABBR.get(cleaned.lower())


def leading_state(words: str) -> Optional[str]:
    """
    Resolve the longest run of leading words that names a state.

    "Texas Convention Center" -> "TX", "New York City" -> "NY".
    """
    parts = words.split()
    for size in range(min(3, len(parts)), 0, -1):
        abbr = normalize_state(' '.join(parts[:size]))
        if abbr:
            return abbr
    return None


def collapse_whitespace(value: Optional[str]) -> str:
    if not value:
        return ''
    return re.sub(r'\s+', ' ', value.replace('\xa0', ' ')).strip()


def sanitize_evidence(text: Optional[str], max_length: int = EVIDENCE_MAX_LENGTH) -> str:
    return collapse_whitespace(text)[:max_length]


def strip_html(markup: str) -> str:
    """Remove script/style blocks and tags, leaving a space where each tag was."""
    text = re.sub(r'<script\b[^>]*>[\s\S]*?</script>', ' ', markup, flags=re.IGNORECASE)
    text = re.sub(r'<style\b[^>]*>[\s\S]*?</style>', ' ', text, flags=re.IGNORECASE)
    text = re.sub(r'<[^>]+>', ' ', text)
    return re.sub(r'&nbsp;', ' ', text, flags=re.IGNORECASE)


def to_lines(markup: str) -> List[str]:
    """Split an HTML fragment into logical text lines at block-level boundaries."""
    text = re.sub(r'<script[\s\S]*?</script>', '', markup, flags=re.IGNORECASE)
    text = re.sub(r'<style[\s\S]*?</style>', '', text, flags=re.IGNORECASE)
    text = re.sub(r'<br\s*/?>', '\n', text, flags=re.IGNORECASE)
    text = re.sub(r'</(p|div|li|dd|dt|tr|td|th|h[1-6])>', '\n', text, flags=re.IGNORECASE)
    text = re.sub(r'<[^>]+>', '', text)
    text = html_lib.unescape(text)
    lines = [collapse_whitespace(line) for line in text.split('\n')]
    return [line for line in lines if line]


def wrap_text_as_html(text: Optional[str]) -> str:
    """Wrap plain text as a minimal escaped HTML document."""
    if not text or not text.strip():
        return '<html><body></body></html>'
    return f"<html><body>{html_lib.escape(text, quote=False)}</body></html>"


def iter_text_nodes(root) -> Iterator:
    """Yield the human-visible text nodes under a BeautifulSoup element."""
    for node in root.find_all(string=True):
        if isinstance(node, _NON_TEXT_NODES):
            continue
        if node.parent is not None and node.parent.name in _SKIPPED_TEXT_PARENTS:
            continue
        yield node


def visible_text(root) -> str:
    """Whitespace-collapsed visible text of an element (scripts and styles excluded)."""
    return collapse_whitespace(' '.join(str(node) for node in iter_text_nodes(root)))


def body_text(soup: BeautifulSoup) -> str:
    return visible_text(soup.body or soup)


def find_year(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    match = YEAR_PATTERN.search(text)
    return int(match.group(1)) if match else None


def parse_date_match(match: re.Match, fallback_year: Optional[int]) -> Optional[DateSpan]:
    """
    Turn a DATE_PATTERN match into a date span.

    Returns None when no year is known or the day numbers are not a real
    calendar date, or the range runs backwards.
    """
    month = month_index(match.group(1))
    year = int(match.group(4)) if match.group(4) else fallback_year
    if month is None or year is None:
        return None
    start_day = int(match.group(2))
    end_day = int(match.group(3)) if match.group(3) else start_day
    try:
        start = date(year, month, start_day)
        end = date(year, month, end_day)
    except ValueError:
        return None
    if end < start:
        return None
    return DateSpan(start, end, collapse_whitespace(match.group(0)))


def parse_cross_month_match(match: re.Match, fallback_year: Optional[int]) -> Optional[DateSpan]:
    """
    Turn a CROSS_MONTH_DATE_PATTERN match into a date span.

    When the end month comes before the start month the range crosses New
    Year: with no explicit end year the end lands in start year + 1, and with
    only an explicit end year the start lands in end year - 1.
    """
    start_month = month_index(match.group(1))
    end_month = month_index(match.group(4))
    if start_month is None or end_month is None:
        return None
    explicit_start_year = int(match.group(3)) if match.group(3) else None
    explicit_end_year = int(match.group(6)) if match.group(6) else None
    wraps = end_month < start_month

    if explicit_start_year is not None:
        start_year = explicit_start_year
    elif explicit_end_year is not None:
        start_year = explicit_end_year - 1 if wraps else explicit_end_year
    else:
        start_year = fallback_year
    if start_year is None:
        return None

    if explicit_end_year is not None:
        end_year = explicit_end_year
    else:
        end_year = start_year + 1 if wraps else start_year

    try:
        start = date(start_year, start_month, int(match.group(2)))
        end = date(end_year, end_month, int(match.group(5)))
    except ValueError:
        return None
    if end < start:
        return None
    return DateSpan(start, end, collapse_whitespace(match.group(0)))


def parse_date_text(text: Optional[str], fallback_year: Optional[int]) -> Optional[DateSpan]:
    """First valid date span in text, trying cross-month ranges before single-month ones."""
    if not text:
        return None
    for match in CROSS_MONTH_DATE_PATTERN.finditer(text):
        span = parse_cross_month_match(match, fallback_year)
        if span:
            return span
    for match in DATE_PATTERN.finditer(text):
        span = parse_date_match(match, fallback_year)
        if span:
            return span
    return None


def has_date_pattern(text: Optional[str]) -> bool:
    return bool(text) and bool(DATE_PATTERN.search(text))


def has_city_state(text: Optional[str]) -> bool:
    return bool(text) and bool(CITY_STATE_PATTERN.search(text))
