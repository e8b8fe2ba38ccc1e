# EventEvidenceVerifier.py

import re
import html as html_lib
import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Comment

from EventModels import (
    CONFIRMED, CONTEXT_DESCRIPTION, CONTEXT_VISIBLE_TEXT,
    CalendarDate, ExtractedEvent, StrictDateResult, StrictLocationResult,
    days_between, span_hours,
)
from EventTextPatterns import (
    CITY_STATE_PATTERN, CROSS_MONTH_DATE_PATTERN, DATE_PATTERN, SPELLED_STATE_PATTERN,
    DateSpan, collapse_whitespace, find_year, leading_state, normalize_state,
    parse_cross_month_match, parse_date_match, parse_date_text, sanitize_evidence,
    strip_html, to_lines, visible_text, wrap_text_as_html,
)
from EventEvidenceScoring import (
    ContainerScore, SnippetRank, missing_keywords, rank_snippet, score_container,
    score_direct_candidate, score_line_parse,
)
from StrictDateExtractor import (
    STRUCTURED_DATE_STRATEGIES, date_from_json_ld_item, extract_strict_dates, from_meta_tags,
    iter_json_ld_events,
)
from StrictLocationExtractor import (
    STRUCTURED_LOCATION_STRATEGIES, extract_strict_location, location_from_json_ld_item,
    from_meta_tags as location_from_meta_tags,
)

logger = logging.getLogger('EventEvidenceVerifier')

MAX_TITLE_CONTAINERS = 6
SNIPPET_RADIUS = 3000
MAX_TITLE_OCCURRENCES = 50
MAX_DATE_DISTANCE_FROM_TITLE = 240
MAX_LOCATION_DISTANCE_FROM_TITLE = 400
MAX_TRAILING_LOCATION_TEXT = 300
LINES_BEFORE_TITLE = 2
LINES_AFTER_TITLE = 4

MULTI_DAY_MARKER = ' (multi-day event)'
MULTI_DAY_MIN_SPAN_HOURS = 24
MULTI_DAY_MAX_START_DRIFT_DAYS = 2

TITLE_ELEMENT_TAGS = ['a', 'strong', 'b', 'h1', 'h2', 'h3', 'h4', 'dt', 'dd', 'li', 'p', 'span', 'div']
CONTAINER_TAGS = ['dd', 'li', 'p', 'div']

URL_STOPWORDS = {
    'https', 'http', 'www', 'events', 'event', 'summit', 'conference', 'and', 'the',
    'home', 'calendar', 'index', 'html', 'htm', 'php', 'aspx', 'page', 'detail', 'details',
}

# Generic site labels that end a free-text location
STOP_TOKENS = [
    'Upcoming Events', 'Recently Concluded', 'Events Home', 'Register', 'Learn More',
    'Read More', 'More Info', 'Details', 'Tickets', 'Buy Now', 'Save the Date',
]

MAX_FREE_LOCATION_LENGTH = 60
MAX_FREE_LOCATION_WORDS = 4
PLACE_CONNECTORS = {'of', 'the', 'de', 'la', 'del', 'on', 'upon'}


@dataclass
class TitleContainer:
    html: str
    text: str
    score: ContainerScore


@dataclass
class LineParse:
    event: ExtractedEvent
    score: int


@dataclass
class ContextSnippet:
    html: str
    plain: str
    index: int
    rank: SnippetRank


def extract_year_from_url(url: Optional[str]) -> Optional[int]:
    if not url:
        return None
    match = re.search(r'20\d{2}', url)
    return int(match.group(0)) if match else None


def extract_keywords_from_url(url: Optional[str]) -> List[str]:
    """Meaningful words from the URL path, e.g. /events/ad-week-austin -> ['week', 'austin']."""
    if not url:
        return []
    try:
        path = urlparse(url).path
    except ValueError:
        return []
    keywords = []
    for segment in path.split('/'):
        for token in re.split(r'[-_.]', segment):
            token = re.sub(r'\d', '', token).lower()
            if len(token) > 2 and token not in URL_STOPWORDS and token not in keywords:
                keywords.append(token)
    return keywords


def location_keywords(location: Optional[str]) -> List[str]:
    if not location:
        return []
    return [token.lower() for token in re.split(r'[,\s]+', location) if len(token) > 2]


def build_keywords(event: ExtractedEvent) -> List[str]:
    keywords = []
    if event.location_status == CONFIRMED:
        keywords.extend(location_keywords(event.location))
    for keyword in extract_keywords_from_url(event.url):
        if keyword not in keywords:
            keywords.append(keyword)
    return keywords


def normalize_location_text(value: Optional[str]) -> Optional[str]:
    """
    Clean a loose piece of text that may name a place.

    Returns "City, ST" when a city/state pair can be recognized, a short
    place-like phrase otherwise, or None for text that does not look like a place.
    """
    cleaned = collapse_whitespace(html_lib.unescape(value or ''))
    cleaned = re.sub(r'^[-–—,:•·|]+', '', cleaned).strip()
    if not cleaned:
        return None

    match = CITY_STATE_PATTERN.search(cleaned)
    if match and normalize_state(match.group(2)):
        return f"{collapse_whitespace(match.group(1))}, {match.group(2)}"
    match = SPELLED_STATE_PATTERN.search(cleaned)
    if match:
        state = leading_state(match.group(2))
        if state:
            return f"{collapse_whitespace(match.group(1))}, {state}"

    for token in STOP_TOKENS:
        idx = cleaned.find(token)
        if idx > 0:
            cleaned = cleaned[:idx].strip()
        elif idx == 0:
            return None
    cleaned = cleaned.rstrip(' ,-–—|').strip()
    if not cleaned or re.search(r'\d', cleaned):
        return None

    parts = [part.strip() for part in cleaned.split(',') if part.strip()]
    if len(parts) >= 2:
        cleaned = ', '.join(parts[-2:])
    words = cleaned.replace(',', ' ').split()
    if len(cleaned) > MAX_FREE_LOCATION_LENGTH or len(words) > MAX_FREE_LOCATION_WORDS:
        return None
    # Place names are title case apart from short connectors ("Isle of Palms")
    if not all(word[0].isupper() for word in words if word.lower() not in PLACE_CONNECTORS):
        return None
    return cleaned


def _state_pattern_location(text: str) -> Optional[Tuple[str, str]]:
    for match in CITY_STATE_PATTERN.finditer(text):
        if normalize_state(match.group(2)):
            return f"{collapse_whitespace(match.group(1))}, {match.group(2)}", match.group(0)
    for match in SPELLED_STATE_PATTERN.finditer(text):
        state = leading_state(match.group(2))
        if state:
            return f"{collapse_whitespace(match.group(1))}, {state}", match.group(0)
    return None


def _line_location(window: List[str], title_line: str, title: str,
                   date_line: str, span: DateSpan) -> Optional[Tuple[str, str]]:
    """(location, evidence) from the lines around a title, or None."""
    for line in window:
        found = _state_pattern_location(line)
        if found:
            return found

    # "Title - Chicago" or "Title | Chicago"
    title_idx = title_line.lower().find(title.lower())
    if title_idx != -1:
        rest = title_line[title_idx + len(title):]
        dash = re.match(r'^\s*[-–—|]\s*(.+)$', rest)
        if dash:
            location = normalize_location_text(dash.group(1))
            if location:
                return location, dash.group(1)

    # "Mar 10-12, 2026 · Austin"
    date_idx = date_line.find(span.evidence)
    if date_idx != -1:
        trailing = date_line[date_idx + len(span.evidence):][:MAX_TRAILING_LOCATION_TEXT]
        location = normalize_location_text(trailing)
        if location:
            return location, trailing
    return None


def _locations_differ(first: Optional[str], second: Optional[str]) -> bool:
    return bool(first and second and first.strip().lower() != second.strip().lower())


def refine_from_snippet(event: ExtractedEvent, snippet_html: str, keywords: List[str],
                        fallback_year: Optional[int]) -> Optional[LineParse]:
    """
    Re-derive date and location from the lines around the title.

    Returns the best-scoring parse, or None when no title line has a date
    within its neighborhood.
    """
    lines = to_lines(snippet_html)
    title_lower = event.title.lower()
    best = None
    for i, line in enumerate(lines):
        if title_lower not in line.lower():
            continue
        window = [line] + lines[max(0, i - LINES_BEFORE_TITLE):i] + lines[i + 1:i + 1 + LINES_AFTER_TITLE]
        span = None
        date_line = line
        for candidate in window:
            span = parse_date_text(candidate, fallback_year)
            if span:
                date_line = candidate
                break
        if not span:
            continue

        found = _line_location(window, line, event.title, date_line, span)
        start = CalendarDate(span.start)
        refined = event.copy(
            start=start,
            end=CalendarDate(span.end),
            date_status=CONFIRMED,
            evidence=sanitize_evidence(span.evidence),
            evidence_context=CONTEXT_VISIBLE_TEXT,
        )
        if found:
            refined = refined.copy(
                location=found[0],
                location_status=CONFIRMED,
                location_evidence=sanitize_evidence(found[1]),
                location_evidence_context=CONTEXT_VISIBLE_TEXT,
            )
        else:
            refined = refined.with_location_tbd()

        score = score_line_parse(
            found_location=bool(found),
            day_difference=days_between(start, event.start),
            keyword_misses=missing_keywords(' '.join(window), keywords),
            location_differs=_locations_differ(found[0] if found else None, event.location),
        )
        if best is None or score < best.score:
            best = LineParse(refined, score)
    return best


def _title_elements(soup: BeautifulSoup, title_lower: str) -> List:
    """Elements whose text contains the title, found via the text nodes that hold it."""
    elements = []
    seen = set()
    for node in soup.find_all(string=lambda s: s and title_lower in s.lower()):
        element = node.parent
        if isinstance(node, Comment) or element is None or element.name in ('script', 'style', 'title', 'meta', 'noscript'):
            continue
        if element.name not in TITLE_ELEMENT_TAGS:
            element = element.find_parent(TITLE_ELEMENT_TAGS)
        if element is not None and id(element) not in seen:
            seen.add(id(element))
            elements.append(element)
    if elements:
        return elements

    # Titles split across inline tags need the slower full scan
    for element in soup.find_all(TITLE_ELEMENT_TAGS):
        if title_lower in visible_text(element).lower():
            elements.append(element)
    return elements


def find_title_containers(soup: BeautifulSoup, title: str, keywords: List[str],
                          expected_year: Optional[int],
                          limit: int = MAX_TITLE_CONTAINERS) -> List[TitleContainer]:
    """Lowest-scoring block containers around elements that contain the title."""
    title_lower = title.lower()
    best_by_container = {}
    for element in _title_elements(soup, title_lower):
        element_text = visible_text(element)
        if title_lower not in element_text.lower():
            continue
        if element.name in CONTAINER_TAGS:
            container = element
        else:
            container = element.find_parent(CONTAINER_TAGS) or element
        container_text = visible_text(container)
        score = score_container(element_text, container_text, title, keywords, expected_year)
        key = id(container)
        current = best_by_container.get(key)
        if current is None or score < current.score:
            best_by_container[key] = TitleContainer(str(container), container_text, score)
    ranked = sorted(best_by_container.values(), key=lambda c: c.score)
    return ranked[:limit]


def find_context_snippet(html: str, title: str, keywords: List[str],
                         expected_year: Optional[int]) -> Optional[ContextSnippet]:
    """Best-ranked window of raw HTML around a case-insensitive occurrence of the title."""
    lowered = html.lower()
    needles = [title.lower()]
    escaped = html_lib.escape(title, quote=False).lower()
    if escaped != needles[0]:
        needles.append(escaped)

    body_index = lowered.find('<body')
    best = None
    for needle in needles:
        idx = lowered.find(needle)
        seen = 0
        while idx != -1 and seen < MAX_TITLE_OCCURRENCES:
            start = max(0, idx - SNIPPET_RADIUS)
            end = min(len(html), idx + len(needle) + SNIPPET_RADIUS)
            snippet = html[start:end]
            plain = collapse_whitespace(html_lib.unescape(strip_html(snippet)))
            rank = rank_snippet(plain, title, keywords, expected_year, idx, body_index)
            if best is None or rank < best.rank:
                best = ContextSnippet(snippet, plain, idx, rank)
            seen += 1
            idx = lowered.find(needle, idx + len(needle))
        if best is not None:
            break
    return best


def find_best_date(plain: str, title: str, fallback_year: Optional[int]) -> Optional[DateSpan]:
    """Date nearest the title in plain text, cross-month ranges first."""
    title_index = plain.lower().find(title.lower())
    for pattern, parse in ((CROSS_MONTH_DATE_PATTERN, parse_cross_month_match),
                           (DATE_PATTERN, parse_date_match)):
        candidates = []
        for match in pattern.finditer(plain):
            distance = abs(match.start() - title_index) if title_index != -1 else 0
            if distance > MAX_DATE_DISTANCE_FROM_TITLE:
                continue
            span = parse(match, fallback_year)
            if span:
                candidates.append((distance, match.start(), span))
        if candidates:
            return min(candidates, key=lambda c: (c[0], c[1]))[2]
    return None


def find_best_location(plain: str, title: str) -> Optional[Tuple[str, str]]:
    """"City, ST" nearest the title in plain text, preferring text after the title."""
    title_index = plain.lower().find(title.lower())
    candidates = []
    for pattern in (CITY_STATE_PATTERN, SPELLED_STATE_PATTERN):
        for match in pattern.finditer(plain):
            state = normalize_state(match.group(2)) if pattern is CITY_STATE_PATTERN else leading_state(match.group(2))
            if not state:
                continue
            if title_index == -1:
                before, distance = 0, 0
            else:
                before = 0 if match.start() >= title_index else 1
                distance = abs(match.start() - title_index)
            if distance > MAX_LOCATION_DISTANCE_FROM_TITLE:
                continue
            location = f"{collapse_whitespace(match.group(1))}, {state}"
            candidates.append((before, distance, location, match.group(0)))
    if not candidates:
        return None
    _, _, location, evidence = min(candidates, key=lambda c: (c[0], c[1]))
    return location, evidence


def corroborate_location(location: Optional[str], html: str) -> Optional[str]:
    """
    Look for an unverified location in the raw HTML.

    Tries an exact substring, then "City<venue text>, ST", then city followed
    by the state within 50 characters, then independent city and state
    mentions. Returns the matching HTML text as evidence, or None.
    """
    target = collapse_whitespace(location)
    if not target:
        return None
    lowered = html.lower()
    idx = lowered.find(target.lower())
    if idx != -1:
        return html[idx:idx + len(target)]

    parts = [part.strip() for part in target.split(',') if part.strip()]
    if len(parts) < 2:
        return None
    city, state = parts[0].lower(), parts[-1].lower()
    city_re, state_re = re.escape(city), re.escape(state)

    match = re.search(rf"\b{city_re}[^,]{{0,100}},\s*{state_re}\b", lowered)
    if not match and len(state) == 2:
        match = re.search(rf"\b{city_re}[^,]{{0,50}}?,?\s*{state_re}\b", lowered)
    if match:
        return sanitize_evidence(html_lib.unescape(strip_html(html[match.start():match.end()])))

    city_match = re.search(rf"\b{city_re}\b", lowered)
    state_match = re.search(rf"(?:,\s*|\s|\(){state_re}\b", lowered)
    if city_match and state_match:
        return html[city_match.start():city_match.end()]
    return None


def _same_place(strict_location: Optional[str], candidate_location: Optional[str]) -> bool:
    if not strict_location or not candidate_location:
        return False
    strict_lower = strict_location.strip().lower()
    candidate_lower = candidate_location.strip().lower()
    if strict_lower == candidate_lower:
        return True
    city = candidate_lower.split(',')[0].strip()
    return bool(city) and city in strict_lower


def resolve_location(event: ExtractedEvent, html: str, strict: StrictLocationResult) -> StrictLocationResult:
    """
    Decide the final location from the generated value and the strict finding.

    A strict finding that agrees with the generated location wins; otherwise a
    generated location corroborated by the HTML is kept; otherwise the strict
    finding (or nothing) replaces it.
    """
    if event.location:
        if strict.confirmed and _same_place(strict.location, event.location):
            return strict
        evidence = corroborate_location(event.location, html)
        if evidence:
            return StrictLocationResult(
                location=event.location,
                location_status=CONFIRMED,
                location_evidence=sanitize_evidence(evidence),
                location_evidence_context=CONTEXT_VISIBLE_TEXT,
            )
        logger.debug(f"Location '{event.location}' for '{event.title}' not found in page; "
                     f"{'replaced by ' + strict.location if strict.confirmed else 'cleared'}")
    return strict if strict.confirmed else StrictLocationResult()


def apply_multi_day_rule(original: ExtractedEvent, result: StrictDateResult) -> StrictDateResult:
    """
    Keep a generated multi-day end date when the verified dates collapse to one day.

    Applies only when the generated span exceeds a day, the verified span does
    not, and the verified start is within two days of the generated start.
    """
    if not result.confirmed or original.start is None or original.end is None:
        return result
    if span_hours(original.start, original.end) <= MULTI_DAY_MIN_SPAN_HOURS:
        return result
    if span_hours(result.start, result.end) >= MULTI_DAY_MIN_SPAN_HOURS:
        return result
    drift = days_between(result.start, original.start)
    if drift is None or drift >= MULTI_DAY_MAX_START_DRIFT_DAYS:
        return result
    logger.debug(f"Keeping generated end {original.end.isoformat()} for multi-day '{original.title}'")
    return replace(result, end=original.end, evidence=f"{result.evidence}{MULTI_DAY_MARKER}")


def _structured_for_title(soup: BeautifulSoup, title: str) -> Tuple[StrictDateResult, StrictLocationResult]:
    """
    Dates and location from page-level structured data describing this event.

    A JSON-LD event is used when its name matches the title or it is the only
    event on the page.
    """
    items = list(iter_json_ld_events(soup))
    title_lower = title.lower()
    chosen = None
    for item, raw in items:
        name = str(item.get('name') or '').lower()
        if name and (name in title_lower or title_lower in name):
            chosen = (item, raw)
            break
    if chosen is None and len(items) == 1:
        chosen = items[0]

    dates = StrictDateResult()
    location = StrictLocationResult()
    if chosen is not None:
        dates = date_from_json_ld_item(*chosen) or StrictDateResult()
        location = location_from_json_ld_item(chosen[0]) or StrictLocationResult()
    if not dates.confirmed and not items:
        dates = from_meta_tags(soup) or StrictDateResult()
    if not location.confirmed and not items:
        location = location_from_meta_tags(soup) or StrictLocationResult()
    return dates, location


def _description_dates(event: ExtractedEvent) -> StrictDateResult:
    if not event.description:
        return StrictDateResult()
    result = extract_strict_dates(wrap_text_as_html(event.description))
    if result.confirmed:
        return replace(result, evidence_context=CONTEXT_DESCRIPTION)
    return StrictDateResult()


def _description_location(event: ExtractedEvent) -> StrictLocationResult:
    if not event.description:
        return StrictLocationResult()
    result = extract_strict_location(wrap_text_as_html(event.description))
    if result.confirmed:
        return replace(result, location_evidence_context=CONTEXT_DESCRIPTION)
    return StrictLocationResult()


def _apply(event: ExtractedEvent, dates: StrictDateResult, location: StrictLocationResult) -> ExtractedEvent:
    if dates.confirmed:
        start, end = dates.start, dates.end or dates.start
        if span_hours(start, end) < 0:
            end = start
        updated = event.copy(start=start, end=end, date_status=CONFIRMED,
                             evidence=dates.evidence, evidence_context=dates.evidence_context)
    else:
        if event.start is not None:
            logger.debug(f"No date evidence for '{event.title}'; clearing generated dates")
        updated = event.with_date_tbd()

    if location.confirmed:
        return updated.copy(location=location.location, location_status=CONFIRMED,
                            location_evidence=location.location_evidence,
                            location_evidence_context=location.location_evidence_context)
    return updated.with_location_tbd()


def _line_parse_dates(parse: ExtractedEvent) -> StrictDateResult:
    return StrictDateResult(start=parse.start, end=parse.end, date_status=parse.date_status,
                            evidence=parse.evidence, evidence_context=parse.evidence_context)


def _line_parse_location(parse: ExtractedEvent) -> StrictLocationResult:
    return StrictLocationResult(location=parse.location, location_status=parse.location_status,
                                location_evidence=parse.location_evidence,
                                location_evidence_context=parse.location_evidence_context)


def _verify(event: ExtractedEvent, html: str, soup: BeautifulSoup) -> ExtractedEvent:
    keywords = build_keywords(event)
    expected_year = event.start.year if event.start is not None else extract_year_from_url(event.url)
    fallback_year = expected_year or find_year(html) or date.today().year

    # Title containers in the parsed document
    best_direct = None
    for container in find_title_containers(soup, event.title, keywords, expected_year):
        parse = refine_from_snippet(event, container.html, keywords, fallback_year)
        if parse is None:
            continue
        total = score_direct_candidate(
            container.score,
            days_between(parse.event.start, event.start),
            _locations_differ(parse.event.location, event.location),
        )
        if best_direct is None or total < best_direct[0]:
            best_direct = (total, parse.event)

    if best_direct is not None:
        refined = best_direct[1]
        dates = apply_multi_day_rule(event, _line_parse_dates(refined))
        location = resolve_location(event, html, _line_parse_location(refined))
        return _apply(event, dates, location)

    # Windowed snippet around the best title occurrence
    snippet = find_context_snippet(html, event.title, keywords, expected_year)
    if snippet is None:
        logger.debug(f"Title '{event.title}' not found in page; using description only")
        return _apply(event, _description_dates(event), _description_location(event))

    refined = refine_from_snippet(event, snippet.html, keywords, fallback_year)
    if refined is not None and refined.event.location_status == CONFIRMED:
        dates = apply_multi_day_rule(event, _line_parse_dates(refined.event))
        location = resolve_location(event, html, _line_parse_location(refined.event))
        return _apply(event, dates, location)

    structured_dates, structured_location = _structured_for_title(soup, event.title)

    dates = extract_strict_dates(snippet.html, STRUCTURED_DATE_STRATEGIES)
    if not dates.confirmed:
        dates = structured_dates
    if not dates.confirmed:
        span = find_best_date(snippet.plain, event.title, fallback_year)
        if span:
            dates = StrictDateResult(CalendarDate(span.start), CalendarDate(span.end), CONFIRMED,
                                     sanitize_evidence(span.evidence), CONTEXT_VISIBLE_TEXT)
    if not dates.confirmed and refined is not None:
        dates = _line_parse_dates(refined.event)
    if not dates.confirmed:
        dates = _description_dates(event)
    dates = apply_multi_day_rule(event, dates)

    location = extract_strict_location(snippet.html, STRUCTURED_LOCATION_STRATEGIES)
    if not location.confirmed:
        location = structured_location
    if not location.confirmed:
        found = find_best_location(snippet.plain, event.title)
        if found:
            location = StrictLocationResult(found[0], CONFIRMED, sanitize_evidence(found[1]), CONTEXT_VISIBLE_TEXT)
    if not location.confirmed:
        location = _description_location(event)
    location = resolve_location(event, html, location)

    return _apply(event, dates, location)


def verify_with_context(event: ExtractedEvent, html: str, soup: Optional[BeautifulSoup] = None) -> ExtractedEvent:
    """
    Confirm a candidate's date and location against the page.

    Fields that cannot be traced to the HTML (or to the event description)
    are cleared and marked 'tbd'. Never raises.

    Args:
        event: Candidate from the mapper
        html: Raw page HTML
        soup: Parsed page, reused across candidates when given

    Returns:
        A new candidate with verified or cleared date and location
    """
    try:
        if soup is None:
            soup = BeautifulSoup(html or '', 'html.parser')
        return _verify(event, html or '', soup)
    except Exception as e:
        logger.warning(f"Verification failed for '{event.title}': {e}", exc_info=True)
        return event.with_date_tbd().with_location_tbd()


def ensure_date_evidence(events: List[ExtractedEvent], html: str,
                         soup: Optional[BeautifulSoup] = None) -> List[ExtractedEvent]:
    """Verify every candidate against the same page."""
    if soup is None:
        soup = BeautifulSoup(html or '', 'html.parser')
    return [verify_with_context(event, html, soup) for event in events]
