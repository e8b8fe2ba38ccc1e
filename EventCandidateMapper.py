# EventCandidateMapper.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urljoin, urlparse

from EventModels import CalendarDate, ExtractedEvent, RawAgentEvent

logger = logging.getLogger('EventCandidateMapper')

# Formats the generation step is asked for first, then common variants
DATE_FORMATS = ['%b %d, %Y', '%B %d, %Y', '%b %d %Y', '%B %d %Y', '%Y-%m-%d', '%m/%d/%Y']

# Second-level labels that belong to a public suffix (bbc.co.uk -> bbc)
COMPOUND_SUFFIX_LABELS = {'co', 'com', 'org', 'net', 'gov', 'ac', 'edu'}


def parse_display_date(value: Optional[str]) -> Optional[CalendarDate]:
    """
    Parse a "Mon DD, YYYY" display date into a date-only value.

    Args:
        value: Date text such as "Oct 29, 2025"

    Returns:
        CalendarDate or None if the text is not a date
    """
    if not value:
        return None
    text = ' '.join(value.split()).replace('Sept ', 'Sep ')
    for fmt in DATE_FORMATS:
        try:
            return CalendarDate(datetime.strptime(text, fmt).date())
        except ValueError:
            continue
    logger.debug(f"Unparseable display date: {value}")
    return None


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


def derive_source_name(final_url: Optional[str], provided: Optional[str] = None) -> Optional[str]:
    """
    Name of the site an event was found on.

    A provided name of three characters or fewer is an acronym and is
    upper-cased; longer names keep their casing apart from the first letter.
    Without a provided name, the registrable domain label is used.
    """
    candidate = (provided or '').strip()
    if candidate:
        return candidate.upper() if len(candidate) <= 3 else _capitalize(candidate)

    if not final_url:
        return None
    try:
        host = urlparse(final_url).hostname or ''
    except ValueError:
        return None
    if host.startswith('www.'):
        host = host[4:]
    labels = [label for label in host.split('.') if label]
    if not labels:
        return None
    if len(labels) >= 3 and labels[-2] in COMPOUND_SUFFIX_LABELS and len(labels[-1]) == 2:
        label = labels[-3]
    elif len(labels) >= 2:
        label = labels[-2]
    else:
        label = labels[0]
    return label.upper() if len(label) <= 3 else _capitalize(label)


def dedupe_key(event: ExtractedEvent) -> tuple:
    start = event.start.isoformat() if event.start is not None else ''
    return (event.title.strip().lower(), start, (event.location or '').strip())


def dedupe_events(events: List[ExtractedEvent]) -> List[ExtractedEvent]:
    """Keep the first candidate for each (title, start, location)."""
    unique_events = []
    seen_keys = set()
    for event in events:
        key = dedupe_key(event)
        if key in seen_keys:
            continue
        seen_keys.add(key)
        unique_events.append(event)
    return unique_events


def map_agent_event(raw: RawAgentEvent, final_url: str) -> Optional[ExtractedEvent]:
    title = (raw.title or '').strip()
    if not title:
        return None
    start = parse_display_date(raw.start)
    end = parse_display_date(raw.end) or start
    link = urljoin(final_url, raw.link) if raw.link else final_url
    return ExtractedEvent(
        title=title,
        url=link,
        start=start,
        end=end,
        location=(raw.location or '').strip() or None,
        description=raw.description,
        source=derive_source_name(final_url, raw.source),
    )


def map_agent_events(raw_events: List[Union[RawAgentEvent, Dict[str, Any]]], final_url: str) -> List[ExtractedEvent]:
    """
    Convert raw generated events into candidates.

    Both statuses stay 'tbd' until the verifier proves them. Items without a
    title are discarded.

    Args:
        raw_events: Raw events (dicts or RawAgentEvent)
        final_url: URL the page was served from, for links and source names

    Returns:
        De-duplicated list of candidates
    """
    events = []
    for item in raw_events or []:
        if isinstance(item, dict):
            item = RawAgentEvent.from_dict(item)
        elif not isinstance(item, RawAgentEvent):
            logger.debug(f"Skipping non-object agent event: {item!r}")
            continue
        event = map_agent_event(item, final_url)
        if event is None:
            logger.debug("Discarding agent event without a title")
            continue
        events.append(event)
    return dedupe_events(events)
