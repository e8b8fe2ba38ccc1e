# EventNormalizer.py

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from EventModels import CalendarDate, EventTime, ExtractedEvent, Instant, NormalizedEvent
from EventTagExtractor import extract_tags, normalize_tags
from StrictLocationExtractor import parse_location_string

logger = logging.getLogger('EventNormalizer')

DEFAULT_TIMEZONE = 'America/New_York'

# All-day events are stored at fixed UTC times so the calendar day survives any
# timezone shift; consumers recognize them by these sentinels.
ALL_DAY_START_UTC = time(12, 0, 0)
ALL_DAY_END_UTC = time(22, 0, 0)
TIMED_END_OF_DAY = time(23, 59, 59)

# Upper bounds of the stored record
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_LOCATION_LENGTH = 200
MAX_SOURCE_LENGTH = 100
MAX_PLACE_PART_LENGTH = 100
MAX_TIMEZONE_LENGTH = 50
MAX_URL_LENGTH = 2048


class NormalizationError(ValueError):
    """A candidate cannot become a stored record."""


@dataclass
class NormalizeResult:
    ok: bool
    count: int
    events: List[NormalizedEvent] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': self.ok,
            'count': self.count,
            'events': [event.to_dict() for event in self.events],
            'errors': list(self.errors),
        }


def _zone(name: Optional[str]):
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', interpreting local times as UTC")
        return timezone.utc


def _to_utc(value: datetime, zone) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(timezone.utc)


def _at(day: date, at: time, zone=timezone.utc) -> datetime:
    return datetime.combine(day, at).replace(tzinfo=zone).astimezone(timezone.utc)


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value[:limit] if value else None


def is_all_day(start: Optional[EventTime], end: Optional[EventTime]) -> bool:
    """All-day when neither value carries a time of day."""
    return not isinstance(start, Instant) and not isinstance(end, Instant)


def normalize_event(event: ExtractedEvent, default_timezone: str = DEFAULT_TIMEZONE,
                    tag_keyword_map: Optional[Dict[str, List[str]]] = None) -> NormalizedEvent:
    """
    Turn a verified candidate into the stored record shape.

    Args:
        event: Verified candidate
        default_timezone: Zone for timed events that do not name one
        tag_keyword_map: Optional tag -> keywords map for tag derivation

    Returns:
        NormalizedEvent with UTC start/end

    Raises:
        NormalizationError: missing title or missing start date
    """
    title = (event.title or '').strip()
    if not title:
        raise NormalizationError('Event missing title')
    if event.start is None:
        raise NormalizationError(f"Event '{title}' has no valid start date")

    start_value, end_value = event.start, event.end or event.start
    all_day = is_all_day(start_value, end_value)

    if all_day:
        start_day = start_value.as_date()
        start = _at(start_day, ALL_DAY_START_UTC)
        end = _at(end_value.as_date(), ALL_DAY_END_UTC)
        if end < start:
            end = _at(start_day, ALL_DAY_END_UTC)
        event_timezone = None
    else:
        event_timezone = event.timezone or default_timezone
        zone = _zone(event_timezone)
        if isinstance(start_value, Instant):
            start = _to_utc(start_value.value, zone)
        else:
            start = _at(start_value.as_date(), time(0, 0), zone)
        if isinstance(end_value, Instant) and event.end is not None:
            end = _to_utc(end_value.value, zone)
        else:
            # Date-only or missing end: close at the end of that day
            end_day = end_value.as_date() if isinstance(end_value, CalendarDate) else start.astimezone(zone).date()
            end = _at(end_day, TIMED_END_OF_DAY, zone)
        if end < start:
            end = start

    tags = extract_tags(event, tag_keyword_map=tag_keyword_map) or normalize_tags(event.tags)

    parsed = parse_location_string(event.location)
    city = event.city or parsed['city']
    region = event.region or parsed['region']
    country = event.country or parsed['country']

    return NormalizedEvent(
        title=title[:MAX_TITLE_LENGTH],
        start=start,
        end=end,
        all_day=all_day,
        url=_clip(event.url, MAX_URL_LENGTH),
        description=_clip(event.description, MAX_DESCRIPTION_LENGTH),
        location=_clip(event.location, MAX_LOCATION_LENGTH),
        source=_clip(event.source, MAX_SOURCE_LENGTH),
        timezone=_clip(event_timezone, MAX_TIMEZONE_LENGTH),
        tags=tags,
        country=_clip(country, MAX_PLACE_PART_LENGTH),
        region=_clip(region, MAX_PLACE_PART_LENGTH),
        city=_clip(city, MAX_PLACE_PART_LENGTH),
        date_status=event.date_status,
        location_status=event.location_status,
    )


def normalize_events(events: List[Union[ExtractedEvent, Dict[str, Any]]],
                     default_timezone: str = DEFAULT_TIMEZONE,
                     tag_keyword_map: Optional[Dict[str, List[str]]] = None) -> NormalizeResult:
    """
    Normalize a batch of candidates, collecting per-item errors.

    A bad item is reported in `errors` and skipped; it never aborts the batch.
    """
    normalized = []
    errors = []
    for item in events:
        if isinstance(item, dict):
            raw_start = item.get('start')
            item = ExtractedEvent.from_dict(item)
            if raw_start and item.start is None:
                errors.append(f"Event '{item.title}' has an unparseable start date: {raw_start}")
                continue
        try:
            normalized.append(normalize_event(item, default_timezone, tag_keyword_map))
        except NormalizationError as e:
            errors.append(str(e))
        except (ValueError, OverflowError) as e:
            errors.append(f"Error normalizing event '{getattr(item, 'title', '')}': {e}")

    if errors:
        logger.info(f"Normalized {len(normalized)} events, {len(errors)} skipped")
    return NormalizeResult(ok=len(normalized) > 0, count=len(normalized), events=normalized, errors=errors)
