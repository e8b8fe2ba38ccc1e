# EventHtmlScanner.py

import re
import logging
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from EventCandidateMapper import derive_source_name, parse_display_date
from EventModels import CONFIRMED, CONTEXT_VISIBLE_TEXT, ExtractedEvent, RoughEventRow
from EventTextPatterns import sanitize_evidence

logger = logging.getLogger('EventHtmlScanner')

# Elements whose tag or class suggests an event listing entry
EVENT_SELECTORS = [
    'article',
    '[class*="event"]',
    '[class*="card"]',
    '[class*="listing"]',
    'li[class*="event"]',
    'div[class*="event"]',
    'tr[class*="event"]',
]

MIN_ROW_TEXT = 10
MAX_ROW_TEXT = 500
MIN_TITLE_LENGTH = 4
ROW_TEXT_PREVIEW = 200

ROW_DATE_PATTERN = re.compile(
    r'\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\s+\d{1,2}(?:,\s+\d{4})?',
    re.IGNORECASE,
)
ROW_LOCATION_PATTERN = re.compile(r'\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*),\s*([A-Z]{2})\b')


def _first_text(element, selector: str) -> str:
    found = element.select_one(selector)
    return found.get_text().strip() if found else ''


def _row_title(element, text: str) -> str:
    title = _first_text(element, 'h1, h2, h3, h4, h5, h6') or _first_text(element, 'a')
    if not title:
        title = text.split('\n')[0].strip()
    return ' '.join(title.split())


def extract_from_html(html: str, base_url: str) -> List[RoughEventRow]:
    """
    Find rough event-like structures (cards, list items, table rows) in a page.

    Args:
        html: Page HTML
        base_url: URL the page was served from, used to absolutize links

    Returns:
        Rows de-duplicated by lowercased title, in document order per selector
    """
    soup = BeautifulSoup(html or '', 'html.parser')
    rows = []

    for selector in EVENT_SELECTORS:
        for element in soup.select(selector):
            # Newline separator keeps adjacent elements' text from running together
            text = element.get_text('\n').strip()
            if len(text) < MIN_ROW_TEXT or len(text) > MAX_ROW_TEXT:
                continue

            link = element.find('a', href=True)
            url = urljoin(base_url, link['href']) if link else None

            title = _row_title(element, text)
            if len(title) < MIN_TITLE_LENGTH:
                continue

            date_match = ROW_DATE_PATTERN.search(text)
            location_match = ROW_LOCATION_PATTERN.search(text)
            rows.append(RoughEventRow(
                title=title,
                date=date_match.group(0) if date_match else None,
                location=location_match.group(0) if location_match else None,
                url=url,
                text=' '.join(text.split())[:ROW_TEXT_PREVIEW],
            ))

    seen = set()
    unique_rows = []
    for row in rows:
        key = row.title.lower()
        if key in seen:
            continue
        seen.add(key)
        unique_rows.append(row)

    logger.debug(f"Heuristic scan found {len(unique_rows)} rows ({len(rows)} before dedupe)")
    return unique_rows


def row_to_event(row: RoughEventRow, final_url: str, source: Optional[str] = None) -> ExtractedEvent:
    """Candidate from a scanned row; fields taken verbatim from the row are confirmed."""
    event = ExtractedEvent(
        title=row.title,
        url=row.url,
        source=derive_source_name(final_url, source),
    )
    start = parse_display_date(row.date)
    if start is not None:
        event = event.copy(start=start, end=start, date_status=CONFIRMED,
                           evidence=sanitize_evidence(row.date), evidence_context=CONTEXT_VISIBLE_TEXT)
    if row.location:
        event = event.copy(location=row.location, location_status=CONFIRMED,
                           location_evidence=sanitize_evidence(row.location),
                           location_evidence_context=CONTEXT_VISIBLE_TEXT)
    return event


def scrape_url_generic(html: str, final_url: str, source: Optional[str] = None) -> List[ExtractedEvent]:
    """
    Extract events without the text-generation step.

    Used when generation fails or finds nothing. Never raises; a failure is
    logged and yields an empty list.

    Args:
        html: Page HTML
        final_url: URL the page was served from
        source: Optional caller-supplied source name

    Returns:
        List of candidates built from the heuristic scan
    """
    try:
        rows = extract_from_html(html, final_url)
        events = [row_to_event(row, final_url, source) for row in rows if row.title]
        logger.info(f"Generic scraper built {len(events)} events from {final_url}")
        return events
    except Exception as e:
        logger.error(f"Error in generic scraper for {final_url}: {e}")
        return []
