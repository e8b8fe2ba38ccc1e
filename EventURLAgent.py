# EventURLAgent.py

import asyncio
import os
import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path

from bs4 import BeautifulSoup

from config import DEBUG_EXTRACTOR, MAX_HTML_LENGTH
from EventCandidateMapper import dedupe_events, map_agent_events
from EventEvidenceVerifier import ensure_date_evidence
from EventHtmlScanner import extract_from_html, scrape_url_generic
from EventModels import ExtractedEvent
from EventTextGenerator import AgentTextGenerator, GenerationError, parse_event_array
from PageFetcher import FetchError, PageFetcher

logger = logging.getLogger('EventURLAgent')

# Rows from the heuristic scan passed to the second generation pass
MAX_ROUGH_ROWS = 25

SYSTEM_PROMPT = """
You extract event listings from the HTML of a single web page.

Read the whole page before answering. Confirm what each element actually is
instead of trusting its label: the event title is the event's proper name, not
a venue, organizer or category tag; the dates are the days the event happens,
not posting dates, ticket sale windows, deadlines or door times.

An event is a single occurrence or a multi-day happening with its own title and
dates. Ignore ads, newsletter signups, category pages and sponsor modules. For a
recurring calendar, list each dated occurrence when the dates differ.

Fields:
- title: the event's name.
- dates: {"start": "Mon DD, YYYY", "end": "Mon DD, YYYY"}, e.g. "Oct 29, 2025".
  Use the same value for both when only one date appears. Capture the FULL
  range of multi-day events, including ranges across months ("Oct 29 - Nov 2")
  and years ("Dec 28 - Jan 3"). If the year is missing, take it from the nearest
  explicit year on the page; if still ambiguous, use null.
- location: "City, ST" with the USPS two-letter state code (derive it from a
  spelled-out state name). null if only virtual or online. Never invent a city.
- link: absolute URL of the event's own page, else null.
- source: the site the event was found on, from the page's registrable domain,
  capitalized (events.mediapost.com -> "MediaPost").
- description: two or three sentences copied or paraphrased from the page
  (what it is, who it is for, format), or null. No markdown.

Treat events with the same title, start date and city as duplicates and keep
the most complete one.

Before returning an event ask: is this really the title, are these really the
event dates, is this the event's page? Only include it if every answer is yes.

Output ONLY a JSON array of objects with exactly these keys:
[{"title": "...", "dates": {"start": "...", "end": "..."}, "location": "...",
  "link": "...", "source": "...", "description": "..."}]
Use null for anything you cannot confirm. Return [] when nothing qualifies.
"""


class ExtractionError(Exception):
    """Events could not be extracted from a URL (the page could not be loaded)."""
    def __init__(self, url: str, message: str):
        self.url = url
        self.message = message
        super().__init__(f"Failed to extract events from {url}: {message}")


def build_page_prompt(final_url: str, html: str, hint: Optional[str] = None) -> str:
    hint_line = f"Hint: {hint}\n" if hint else ''
    return f"URL: {final_url}\n{hint_line}\nHTML:\n{html}"


def build_rows_prompt(rows: List[Dict[str, Any]]) -> str:
    return (
        "The page HTML produced the following structured rows. "
        "Convert them into confirmed events following all rules:\n"
        f"{json.dumps(rows, indent=2)}"
    )


class EventURLAgent:
    """
    Extracts verified event candidates from event-listing pages.

    URLs come from a JSON sources file and/or a direct list. For each page the
    agent fetches HTML, asks the text generator for events, maps and verifies
    them against the page, and falls back to a heuristic scan when generation
    finds nothing.
    """

    def __init__(self, sources_file: Optional[str] = None, urls: Optional[List[str]] = None,
                 generator=None, fetcher: Optional[PageFetcher] = None, hint: Optional[str] = None,
                 max_html_length: int = MAX_HTML_LENGTH, use_generic_fallback: bool = True):
        """
        Args:
            sources_file: Path to a JSON file containing URL sources
            urls: Direct list of URLs to scan
            generator: Object with `async generate(system, user) -> str`
            fetcher: Page fetcher; a plain-HTTP PageFetcher when omitted
            hint: Optional hint passed to the generator for every URL
            max_html_length: HTML sent to the generator is cut to this length
            use_generic_fallback: Run the generic scraper when generation yields nothing
        """
        self.sources_file = sources_file
        self.direct_urls = urls or []
        self.generator = generator or AgentTextGenerator()
        self.fetcher = fetcher or PageFetcher()
        self.hint = hint
        self.max_html_length = max_html_length
        self.use_generic_fallback = use_generic_fallback
        self.url_sources = []
        self.events: List[ExtractedEvent] = []
        self.errors: Dict[str, str] = {}

        if sources_file:
            self._load_sources()

    def _load_sources(self) -> None:
        """Load URL sources from the JSON sources file."""
        if not os.path.exists(self.sources_file):
            logger.error(f"Sources file not found: {self.sources_file}")
            return
        try:
            with open(self.sources_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.error(f"Invalid JSON format in sources file: {self.sources_file}")
            return

        if isinstance(data, list):
            self.url_sources = data
        elif isinstance(data, dict) and isinstance(data.get('sources'), list):
            self.url_sources = data['sources']
        else:
            logger.error(f"Invalid format in sources file: {self.sources_file}")
            return
        logger.info(f"Loaded {len(self.url_sources)} URL sources from {self.sources_file}")

    def get_all_urls(self) -> List[str]:
        """
        All URLs to scan, file sources first, without duplicates.

        Returns:
            List of URLs in first-seen order
        """
        all_urls = []
        for source in self.url_sources:
            if isinstance(source, str):
                all_urls.append(source)
            elif isinstance(source, dict) and source.get('url'):
                all_urls.append(source['url'])
        all_urls.extend(self.direct_urls)

        unique_urls = []
        for url in all_urls:
            url = url.strip()
            if url and url not in unique_urls:
                unique_urls.append(url)
        return unique_urls

    async def _load_html(self, url: str, html: Optional[str]) -> Tuple[str, str]:
        if html:
            return html, url
        try:
            page = await self.fetcher.fetch(url)
        except FetchError as e:
            raise ExtractionError(url, e.message) from e
        if not page.html:
            raise ExtractionError(url, "Failed to load page HTML")
        return page.html, page.final_url

    async def _generate_events(self, user_prompt: str) -> List[Dict[str, Any]]:
        """One generation pass; failures are logged and yield no events."""
        try:
            text = await self.generator.generate(SYSTEM_PROMPT, user_prompt)
        except GenerationError as e:
            logger.warning(f"Text generation failed: {e}")
            return []
        except Exception as e:
            logger.warning(f"Text generation service error: {type(e).__name__}: {e}")
            return []

        if DEBUG_EXTRACTOR:
            logger.debug(f"Raw agent response: {text}")
        return parse_event_array(text)

    async def extract_with_page(self, url: str, hint: Optional[str] = None,
                                html: Optional[str] = None) -> Tuple[List[ExtractedEvent], str, str]:
        """
        Extract verified candidates and return them with the page they came from.

        Returns:
            (events, html, final_url)

        Raises:
            ExtractionError: when the page cannot be loaded
        """
        html, final_url = await self._load_html(url, html)
        truncated_html = html[:self.max_html_length]

        raw_events = await self._generate_events(build_page_prompt(final_url, truncated_html, hint))

        if not raw_events:
            rough_rows = extract_from_html(html, final_url)
            if rough_rows:
                logger.info(f"No events from first pass on {final_url}, retrying with {len(rough_rows)} scanned rows")
                rows = [row.to_dict() for row in rough_rows[:MAX_ROUGH_ROWS]]
                raw_events = await self._generate_events(build_rows_prompt(rows))

        candidates = map_agent_events(raw_events, final_url)
        soup = BeautifulSoup(html, 'html.parser')
        events = ensure_date_evidence(candidates, html, soup)
        return events, html, final_url

    async def extract_events_from_url(self, url: str, hint: Optional[str] = None,
                                      html: Optional[str] = None) -> Dict[str, List[ExtractedEvent]]:
        """
        Extract events from one URL (or from pre-supplied HTML).

        Args:
            url: Page URL
            hint: Optional hint text for the generator
            html: Pre-fetched HTML; skips fetching when given

        Returns:
            {"events": [...]} with every date and location either confirmed or tbd

        Raises:
            ExtractionError: when the page cannot be loaded
        """
        events, _, _ = await self.extract_with_page(url, hint, html)
        return {'events': events}

    async def scan_url(self, url: str, html: Optional[str] = None) -> List[ExtractedEvent]:
        """Extract events from one URL, falling back to the generic scraper."""
        logger.info(f"Scanning URL: {url}")
        events, page_html, final_url = await self.extract_with_page(url, self.hint, html)
        if not events and self.use_generic_fallback:
            logger.info(f"No events extracted from {url}, running generic scraper")
            events = scrape_url_generic(page_html, final_url)
        logger.info(f"Found {len(events)} events on {url}")
        return events

    async def run(self) -> List[ExtractedEvent]:
        """
        Scan every configured URL concurrently.

        A failing URL is logged and recorded in `errors`; the others continue.

        Returns:
            De-duplicated events across all URLs
        """
        all_urls = self.get_all_urls()
        logger.info(f"Starting scan for {len(all_urls)} URLs...")

        results = await asyncio.gather(*(self.scan_url(url) for url in all_urls), return_exceptions=True)

        all_events = []
        for url, result in zip(all_urls, results):
            if isinstance(result, Exception):
                logger.error(f"Error scanning {url}: {result}")
                self.errors[url] = str(result)
            else:
                all_events.extend(result)

        self.events = dedupe_events(all_events)
        logger.info(f"Scan complete. Found {len(self.events)} unique events in total.")
        return self.events

    def save_events(self, output_file: str = 'events_output.json') -> None:
        """
        Save the extracted events to a JSON file.

        Args:
            output_file: Path to the output JSON file.
        """
        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                json.dump([event.to_dict() for event in self.events], f, indent=4, ensure_ascii=False)
            logger.info(f"Successfully saved {len(self.events)} events to {output_file}")
        except IOError as e:
            logger.error(f"Error saving events to {output_file}: {str(e)}")
