# StrictLocationExtractor.py

import re
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup

from EventModels import (
    CONFIRMED, CONTEXT_JSON_LD, CONTEXT_META_TAGS, CONTEXT_VISIBLE_TEXT, StrictLocationResult,
)
from EventTextPatterns import (
    CITY_WORDS, body_text, collapse_whitespace, iter_text_nodes,
    leading_state, normalize_state, sanitize_evidence,
)
from StrictDateExtractor import iter_json_ld_events

logger = logging.getLogger('StrictLocationExtractor')

# Loose "City, ST" check applied to structured values before trusting them
LOCATION_REGEX = re.compile(r"^[A-Za-z][A-Za-z .'&\-]+,\s*[A-Za-z][A-Za-z .]+$")

_STATE_TOKEN = r"([A-Z]{2}(?![A-Za-z])|[A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,2})"

# Surface forms tried against visible text, in order
VISIBLE_LOCATION_PATTERNS = [
    re.compile(rf"({CITY_WORDS}),\s*{_STATE_TOKEN}"),       # Austin, TX
    re.compile(rf"({CITY_WORDS})\s*\(\s*{_STATE_TOKEN}\s*\)"),  # Austin (TX)
    re.compile(rf"({CITY_WORDS})\s+[-–—]\s+{_STATE_TOKEN}"),   # Austin - TX
]

CONTEXT_RADIUS = 30
MIN_LEAF_TEXT_LENGTH = 5

VIRTUAL_MARKERS = ('virtual', 'online', 'webinar', 'remote')

LocationStrategy = Callable[[BeautifulSoup], Optional[StrictLocationResult]]


def _confirmed(location: str, evidence: str, context: str) -> StrictLocationResult:
    return StrictLocationResult(
        location=location,
        location_status=CONFIRMED,
        location_evidence=sanitize_evidence(evidence),
        location_evidence_context=context,
    )


def location_from_json_ld_value(value: Any) -> Optional[Tuple[str, str]]:
    """
    Resolve a schema.org location value to (location, evidence).

    Plain strings are used as-is. Place objects prefer addressLocality plus
    addressRegion ("City, ST"), then fall back to the place name.
    """
    if isinstance(value, list):
        for entry in value:
            resolved = location_from_json_ld_value(entry)
            if resolved:
                return resolved
        return None
    if isinstance(value, str):
        text = collapse_whitespace(value)
        return (text, text) if text else None
    if not isinstance(value, dict):
        return None

    address = value.get('address')
    locality = region = None
    if isinstance(address, dict):
        locality = collapse_whitespace(address.get('addressLocality') or '') or None
        region = collapse_whitespace(address.get('addressRegion') or '') or None
    elif isinstance(address, str) and address.strip():
        text = collapse_whitespace(address)
        return text, text

    if locality and region:
        state = normalize_state(region) or region
        return f"{locality}, {state}", locality
    name = collapse_whitespace(value.get('name') or '') or locality
    if not name:
        return None
    if region:
        state = normalize_state(region) or region
        return f"{name}, {state}", name
    return name, name


def location_from_json_ld_item(item: Dict[str, Any]) -> Optional[StrictLocationResult]:
    resolved = location_from_json_ld_value(item.get('location'))
    if not resolved:
        return None
    location, evidence = resolved
    return _confirmed(location, evidence, CONTEXT_JSON_LD)


def from_json_ld(soup: BeautifulSoup) -> Optional[StrictLocationResult]:
    for item, _raw in iter_json_ld_events(soup):
        result = location_from_json_ld_item(item)
        if result:
            return result
    return None


def from_meta_tags(soup: BeautifulSoup) -> Optional[StrictLocationResult]:
    """event:location / itemprop=location meta values shaped like "City, ST"."""
    for attr, value in (('property', 'event:location'), ('name', 'event:location'), ('itemprop', 'location')):
        tag = soup.find('meta', attrs={attr: value})
        if not tag or not tag.get('content'):
            continue
        content = collapse_whitespace(tag['content'])
        if LOCATION_REGEX.match(content):
            return _confirmed(content, content, CONTEXT_META_TAGS)
    return None


def match_visible_location(text: str) -> Optional[Tuple[str, str, int]]:
    """
    Find the first "City, ST"-shaped location in text.

    Returns:
        (normalized "City, ST", matched text, match index) or None
    """
    candidates = []
    for pattern in VISIBLE_LOCATION_PATTERNS:
        for match in pattern.finditer(text):
            state = leading_state(match.group(2))
            if not state:
                continue
            city = collapse_whitespace(match.group(1))
            candidates.append((match.start(), f"{city}, {state}", match))
            break
    if not candidates:
        return None
    index, location, match = min(candidates, key=lambda c: c[0])
    return location, collapse_whitespace(match.group(0)), index


def _context_excerpt(text: str, index: int, length: int) -> str:
    start = max(0, index - CONTEXT_RADIUS)
    return text[start:index + length + CONTEXT_RADIUS]


def _leaf_text(element) -> str:
    """Text of an element's own direct text nodes."""
    return collapse_whitespace(' '.join(str(s) for s in element.find_all(string=True, recursive=False)))


def from_visible_text(soup: BeautifulSoup) -> Optional[StrictLocationResult]:
    """
    Locations written in the page body.

    A match inside a single element's own text wins over one that only
    appears once the whole body text is concatenated.
    """
    root = soup.body or soup
    seen = set()
    for node in iter_text_nodes(root):
        element = node.parent
        if element is None or id(element) in seen:
            continue
        seen.add(id(element))
        own_text = _leaf_text(element)
        if len(own_text) < MIN_LEAF_TEXT_LENGTH:
            continue
        found = match_visible_location(own_text)
        if found:
            location, matched, index = found
            # Keep the evidence a literal slice of the visible text
            evidence = _context_excerpt(own_text, index, len(matched))
            return _confirmed(location, evidence, CONTEXT_VISIBLE_TEXT)

    text = body_text(soup)
    found = match_visible_location(text)
    if found:
        location, matched, index = found
        return _confirmed(location, _context_excerpt(text, index, len(matched)), CONTEXT_VISIBLE_TEXT)
    return None


LOCATION_STRATEGIES: List[LocationStrategy] = [from_json_ld, from_meta_tags, from_visible_text]

STRUCTURED_LOCATION_STRATEGIES: List[LocationStrategy] = [from_json_ld, from_meta_tags]


def extract_strict_location(html: Union[str, BeautifulSoup],
                            strategies: Optional[List[LocationStrategy]] = None) -> StrictLocationResult:
    """
    Find an event location that is directly traceable to the page.

    Args:
        html: Raw HTML or an already parsed document
        strategies: Ordered strategies to try (defaults to LOCATION_STRATEGIES)

    Returns:
        The first confirmed result, or an empty 'tbd' result
    """
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html or '', 'html.parser')
    for strategy in strategies or LOCATION_STRATEGIES:
        result = strategy(soup)
        if result and result.confirmed:
            return result
    return StrictLocationResult()


def parse_location_string(location: Optional[str]) -> Dict[str, Optional[str]]:
    """
    Best-effort split of a free-text location into city/region/country.

    "Austin, TX" -> Austin / TX / US
    "Springfield, Illinois" -> Springfield / IL / US
    "London, United Kingdom" -> London / None / United Kingdom
    "Toronto, ON, Canada" -> Toronto / ON / Canada
    """
    parsed = {'city': None, 'region': None, 'country': None}
    text = collapse_whitespace(location)
    if not text:
        return parsed
    if text.lower() in VIRTUAL_MARKERS:
        return parsed

    parts = [part.strip() for part in text.split(',') if part.strip()]
    if len(parts) == 1:
        parsed['city'] = parts[0]
        return parsed

    if len(parts) >= 3:
        parsed['city'] = parts[-3]
        parsed['region'] = normalize_state(parts[-2]) or parts[-2]
        parsed['country'] = parts[-1]
        return parsed

    city, second = parts
    parsed['city'] = city
    # "Austin, TX 78701" carries a zip after the state
    state = normalize_state(re.sub(r'\s+\d{5}(?:-\d{4})?$', '', second))
    if state:
        parsed['region'] = state
        parsed['country'] = 'US'
    elif second.lower() in ('usa', 'us', 'united states'):
        parsed['country'] = 'US'
    else:
        parsed['country'] = second
    return parsed
