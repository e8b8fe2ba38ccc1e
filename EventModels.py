# EventModels.py

import re
import logging
from dataclasses import dataclass, field, replace, asdict
from datetime import date, datetime, time, timezone
from typing import List, Dict, Any, Optional, Union

logger = logging.getLogger('EventModels')

# Status values
CONFIRMED = 'confirmed'
TBD = 'tbd'

# Evidence contexts
CONTEXT_JSON_LD = 'json-ld'
CONTEXT_META_TAGS = 'meta-tags'
CONTEXT_VISIBLE_TEXT = 'visible-text'
CONTEXT_DESCRIPTION = 'description'

_DATE_ONLY_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


@dataclass(frozen=True)
class CalendarDate:
    """A calendar day with no time-of-day significance (all-day value)."""
    value: date

    @property
    def year(self) -> int:
        return self.value.year

    def as_date(self) -> date:
        return self.value

    def isoformat(self) -> str:
        return self.value.isoformat()


@dataclass(frozen=True)
class Instant:
    """A point in time. Naive values are interpreted later in the event's timezone."""
    value: datetime

    @property
    def year(self) -> int:
        return self.value.year

    def as_date(self) -> date:
        return self.value.date()

    def isoformat(self) -> str:
        return self.value.isoformat()


EventTime = Union[CalendarDate, Instant]


def parse_event_time(literal: Any, midnight_is_date: bool = True) -> Optional[EventTime]:
    """
    Parse a date or timestamp literal into a tagged time value.

    Date-only literals become CalendarDate. Timestamps at exactly midnight
    also become CalendarDate unless midnight_is_date is False; anything
    else carrying a time becomes Instant.

    Args:
        literal: ISO-8601 string, date/datetime object or existing tagged value
        midnight_is_date: Treat "T00:00:00" as a calendar date

    Returns:
        CalendarDate, Instant or None if the literal cannot be parsed
    """
    if literal is None or literal == '':
        return None
    if isinstance(literal, (CalendarDate, Instant)):
        return literal
    if isinstance(literal, datetime):
        return Instant(literal)
    if isinstance(literal, date):
        return CalendarDate(literal)
    if isinstance(literal, dict):
        # {'@type': 'DateTime', 'value': '...'}
        return parse_event_time(literal.get('value'), midnight_is_date)
    if not isinstance(literal, str):
        logger.debug(f"Unexpected datetime literal type: {type(literal)}")
        return None

    text = literal.strip()
    if not text:
        return None

    if _DATE_ONLY_RE.match(text):
        try:
            return CalendarDate(date.fromisoformat(text))
        except ValueError:
            return None

    iso = text.replace('Z', '+00:00').replace('z', '+00:00')
    if re.search(r'[+-]\d{4}$', iso):
        iso = iso[:-2] + ':' + iso[-2:]
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        parsed = None

    if parsed is None:
        formats = [
            '%Y-%m-%d %H:%M',
            '%Y/%m/%d %H:%M:%S',
            '%Y/%m/%d',
            '%m/%d/%Y %I:%M %p',
            '%m/%d/%Y',
            '%B %d, %Y %I:%M %p',
            '%b %d, %Y %I:%M %p',
            '%B %d, %Y',
            '%b %d, %Y',
        ]
        for fmt in formats:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            logger.debug(f"Could not parse datetime literal: {text}")
            return None

    if midnight_is_date and parsed.time() == time(0, 0):
        return CalendarDate(parsed.date())
    return Instant(parsed)


def days_between(first: Optional[EventTime], second: Optional[EventTime]) -> Optional[float]:
    """Absolute distance in days between two tagged values (None if either is missing)."""
    if first is None or second is None:
        return None
    return abs(_as_utc_datetime(first) - _as_utc_datetime(second)).total_seconds() / 86400


def span_hours(start: Optional[EventTime], end: Optional[EventTime]) -> float:
    if start is None or end is None:
        return 0.0
    return (_as_utc_datetime(end) - _as_utc_datetime(start)).total_seconds() / 3600


def _as_utc_datetime(value: EventTime) -> datetime:
    if isinstance(value, CalendarDate):
        return datetime.combine(value.value, time(0, 0), tzinfo=timezone.utc)
    if value.value.tzinfo is None:
        return value.value.replace(tzinfo=timezone.utc)
    return value.value.astimezone(timezone.utc)


def time_value_to_json(value: Optional[EventTime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class RawAgentEvent:
    """Transient shape returned by the text-generation step, before mapping."""
    title: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    location: Optional[str] = None
    link: Optional[str] = None
    source: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RawAgentEvent':
        dates = data.get('dates') or {}
        if not isinstance(dates, dict):
            dates = {}
        return cls(
            title=_optional_str(data.get('title')),
            start=_optional_str(dates.get('start', data.get('start'))),
            end=_optional_str(dates.get('end', data.get('end'))),
            location=_optional_str(data.get('location')),
            link=_optional_str(data.get('link') or data.get('url')),
            source=_optional_str(data.get('source')),
            description=_optional_str(data.get('description')),
        )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class ExtractedEvent:
    """A candidate event. Date and location stay 'tbd' until traced to HTML."""
    title: str
    url: Optional[str] = None
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None
    location: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None
    date_status: str = TBD
    evidence: Optional[str] = None
    evidence_context: Optional[str] = None
    location_status: str = TBD
    location_evidence: Optional[str] = None
    location_evidence_context: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    timezone: Optional[str] = None

    def copy(self, **changes) -> 'ExtractedEvent':
        changes.setdefault('tags', list(self.tags))
        return replace(self, **changes)

    def with_date_tbd(self) -> 'ExtractedEvent':
        return self.copy(start=None, end=None, date_status=TBD, evidence=None, evidence_context=None)

    def with_location_tbd(self) -> 'ExtractedEvent':
        return self.copy(location=None, location_status=TBD,
                         location_evidence=None, location_evidence_context=None)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['start'] = time_value_to_json(self.start)
        data['end'] = time_value_to_json(self.end)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtractedEvent':
        """Build a candidate from a JSON record; literals with a time stay timed."""
        values = {}
        for name in cls.__dataclass_fields__:
            if name in data and data[name] is not None:
                values[name] = data[name]
        values['title'] = str(values.get('title') or '')
        values['start'] = parse_event_time(data.get('start'), midnight_is_date=False)
        values['end'] = parse_event_time(data.get('end'), midnight_is_date=False)
        values['tags'] = list(values.get('tags') or [])
        return cls(**values)


@dataclass
class StrictDateResult:
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None
    date_status: str = TBD
    evidence: Optional[str] = None
    evidence_context: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.date_status == CONFIRMED and self.start is not None and bool(self.evidence)


@dataclass
class StrictLocationResult:
    location: Optional[str] = None
    location_status: str = TBD
    location_evidence: Optional[str] = None
    location_evidence_context: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.location_status == CONFIRMED and bool(self.location) and bool(self.location_evidence)


@dataclass
class RoughEventRow:
    """Event-like structure found by the heuristic HTML scan."""
    title: str
    date: Optional[str] = None
    location: Optional[str] = None
    url: Optional[str] = None
    text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class NormalizedEvent:
    """Canonical record handed to the persistence layer. Times are UTC."""
    title: str
    start: datetime
    end: datetime
    all_day: bool
    url: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    source: Optional[str] = None
    timezone: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    date_status: str = TBD
    location_status: str = TBD

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['start'] = self.start.strftime('%Y-%m-%dT%H:%M:%S.000Z')
        data['end'] = self.end.strftime('%Y-%m-%dT%H:%M:%S.000Z')
        return data
