# StrictDateExtractor.py

import re
import json
import logging
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from bs4 import BeautifulSoup

from EventModels import (
    CONFIRMED, CONTEXT_JSON_LD, CONTEXT_META_TAGS, CONTEXT_VISIBLE_TEXT,
    CalendarDate, StrictDateResult, parse_event_time,
)
from EventTextPatterns import (
    CROSS_MONTH_DATE_PATTERN, DATE_PATTERN, body_text, collapse_whitespace, find_year,
    parse_cross_month_match, parse_date_match, sanitize_evidence,
)

logger = logging.getLogger('StrictDateExtractor')

EVENT_TYPES = [
    'Event', 'SocialEvent', 'Festival', 'ConcertEvent', 'TheaterEvent', 'VisualArtsEvent',
    'MusicEvent', 'SportsEvent', 'EducationEvent', 'BusinessEvent', 'ExhibitionEvent',
]

# (attribute, value) pairs checked for start and end meta tags, in order
META_START_KEYS = [('property', 'event:start_time'), ('name', 'event:start_time'), ('itemprop', 'startDate')]
META_END_KEYS = [('property', 'event:end_time'), ('name', 'event:end_time'), ('itemprop', 'endDate')]

DateStrategy = Callable[[BeautifulSoup], Optional[StrictDateResult]]


def load_json_ld(soup: BeautifulSoup) -> Iterator[Any]:
    """Yield the decoded payload of every JSON-LD script block that parses."""
    for script in soup.find_all('script', type='application/ld+json'):
        content = script.string or script.get_text()
        if not content or not content.strip():
            continue
        # Basic cleaning for trailing commas
        content = re.sub(r',\s*([}\]])', r'\1', content.strip())
        try:
            yield json.loads(content), script
        except json.JSONDecodeError as e:
            logger.debug(f"Invalid JSON-LD block skipped: {e}")


def is_event_item(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    item_type = item.get('@type', '')
    if isinstance(item_type, list):
        return any(t in EVENT_TYPES for t in item_type)
    return item_type in EVENT_TYPES


def iter_json_ld_events(soup: BeautifulSoup) -> Iterator[tuple]:
    """
    Yield (event item, raw script text) for each schema.org Event in the page.

    Handles top-level arrays and @graph containers.
    """
    for data, script in load_json_ld(soup):
        raw = script.string or script.get_text()
        items = data if isinstance(data, list) else [data]
        for item in items:
            if isinstance(item, dict) and isinstance(item.get('@graph'), list):
                for node in item['@graph']:
                    if is_event_item(node):
                        yield node, raw
            elif is_event_item(item):
                yield item, raw


def _literal(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get('value') or value.get('@value')
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _span_evidence(source_text: str, first: str, second: Optional[str]) -> str:
    """
    Shortest excerpt of source_text covering both literals, falling back to
    the first literal alone when the excerpt would be too long.
    """
    collapsed = collapse_whitespace(source_text)
    start = collapsed.find(first)
    if second and second != first and start != -1:
        end = collapsed.find(second, start + len(first))
        if end != -1:
            excerpt = collapsed[start:end + len(second)]
            if len(excerpt) <= 160:
                return excerpt
    return first


def date_result_from_literals(start_literal: str, end_literal: Optional[str],
                              evidence: str, context: str) -> Optional[StrictDateResult]:
    start = parse_event_time(start_literal)
    if start is None:
        return None
    end = parse_event_time(end_literal) if end_literal else None
    if end is None:
        end = start
    if end.as_date() < start.as_date():
        logger.debug(f"Discarding {context} range ending before it starts: {start_literal} / {end_literal}")
        end = start
    return StrictDateResult(
        start=start,
        end=end,
        date_status=CONFIRMED,
        evidence=sanitize_evidence(evidence),
        evidence_context=context,
    )


def date_from_json_ld_item(item: Dict[str, Any], raw_script: str) -> Optional[StrictDateResult]:
    start_literal = _literal(item.get('startDate') or item.get('start'))
    if not start_literal:
        return None
    end_literal = _literal(item.get('endDate') or item.get('end'))
    evidence = _span_evidence(raw_script, start_literal, end_literal)
    return date_result_from_literals(start_literal, end_literal, evidence, CONTEXT_JSON_LD)


def from_json_ld(soup: BeautifulSoup) -> Optional[StrictDateResult]:
    """Dates from the first schema.org Event carrying a startDate."""
    for item, raw in iter_json_ld_events(soup):
        result = date_from_json_ld_item(item, raw)
        if result:
            return result
    return None


def _meta_content(soup: BeautifulSoup, keys: List[tuple]) -> Optional[str]:
    for attr, value in keys:
        tag = soup.find('meta', attrs={attr: value})
        if tag and tag.get('content') and tag['content'].strip():
            return tag['content'].strip()
        if attr == 'itemprop':
            # <time itemprop="startDate" datetime="...">
            tag = soup.find(attrs={attr: value})
            if tag is not None:
                found = tag.get('datetime') or tag.get('content')
                if found and found.strip():
                    return found.strip()
    return None


def from_meta_tags(soup: BeautifulSoup) -> Optional[StrictDateResult]:
    """Dates from event:start_time / event:end_time or itemprop startDate/endDate."""
    start_literal = _meta_content(soup, META_START_KEYS)
    if not start_literal:
        return None
    end_literal = _meta_content(soup, META_END_KEYS)
    return date_result_from_literals(start_literal, end_literal, start_literal, CONTEXT_META_TAGS)


def from_visible_text(soup: BeautifulSoup) -> Optional[StrictDateResult]:
    """
    Dates written in the page body.

    Cross-month ranges are tried before single-month ones; a match without a
    year takes the first 20xx year in the text, else the current year.
    """
    text = body_text(soup)
    if not text:
        return None
    fallback_year = find_year(text) or date.today().year

    for pattern, parse in ((CROSS_MONTH_DATE_PATTERN, parse_cross_month_match),
                           (DATE_PATTERN, parse_date_match)):
        for match in pattern.finditer(text):
            span = parse(match, fallback_year)
            if span:
                return StrictDateResult(
                    start=CalendarDate(span.start),
                    end=CalendarDate(span.end),
                    date_status=CONFIRMED,
                    evidence=sanitize_evidence(span.evidence),
                    evidence_context=CONTEXT_VISIBLE_TEXT,
                )
    return None


DATE_STRATEGIES: List[DateStrategy] = [from_json_ld, from_meta_tags, from_visible_text]

STRUCTURED_DATE_STRATEGIES: List[DateStrategy] = [from_json_ld, from_meta_tags]


def extract_strict_dates(html: Union[str, BeautifulSoup],
                         strategies: Optional[List[DateStrategy]] = None) -> StrictDateResult:
    """
    Find event dates that are directly traceable to the page.

    Args:
        html: Raw HTML or an already parsed document
        strategies: Ordered strategies to try (defaults to DATE_STRATEGIES)

    Returns:
        The first confirmed result, or an empty 'tbd' result
    """
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html or '', 'html.parser')
    for strategy in strategies or DATE_STRATEGIES:
        result = strategy(soup)
        if result and result.confirmed:
            return result
    return StrictDateResult()
