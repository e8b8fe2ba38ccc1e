# execute_url_pipeline.py

import asyncio
import logging
import argparse
import json
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import (
    DEFAULT_TIMEZONE, EVENTS_API_PASSWORD, EVENTS_API_URL, EVENTS_API_USERNAME,
    LOG_LEVEL, OPENAI_API_KEY_SET, REQUEST_DELAY, SAVE_FILES, TAG_KEYWORDS_FILE,
)
from EventNormalizer import normalize_events
from EventTagExtractor import load_tag_keywords
from EventURLAgent import EventURLAgent
from EventUpsertClient import EventApiClient, EventStore, InMemoryEventStore
from PageFetcher import BrowserHandle, PageFetcher

logger = logging.getLogger('URLPipeline')


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(f"url_pipeline_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log")
        ]
    )


def _save_stage(filename: str, payload: Any) -> None:
    with open(filename, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    logger.info(f"Saved {filename}")


async def process_urls(
    agent: EventURLAgent,
    store: EventStore,
    publish: bool = False,
    default_timezone: str = DEFAULT_TIMEZONE,
    tag_keyword_map: Optional[Dict[str, List[str]]] = None,
    html: Optional[str] = None,
    save_to_file: bool = SAVE_FILES
) -> Dict[str, Any]:
    """
    Run extract -> verify -> normalize -> upsert for every URL of the agent.

    Args:
        agent: Configured URL agent
        store: Upsert collaborator (in-memory for dry runs)
        publish: Publish records instead of leaving new ones pending
        default_timezone: Zone for timed events without one
        tag_keyword_map: Optional tag keyword map
        html: Pre-fetched HTML for a single URL run
        save_to_file: Save JSON after each stage

    Returns:
        Dictionary with processing results
    """
    pipeline_start = datetime.now()
    batch_id = pipeline_start.strftime('%Y%m%d_%H%M%S')

    results = {
        "urls": agent.get_all_urls(),
        "publish": publish,
        "start_time": pipeline_start.isoformat(),
        "end_time": None,
        "duration_seconds": None,
        "events_extracted": 0,
        "dates_confirmed": 0,
        "locations_confirmed": 0,
        "events_normalized": 0,
        "normalization_errors": [],
        "url_errors": {},
        "upsert": None,
    }

    try:
        # Step 1: extract and verify
        logger.info("Step 1: Extracting and verifying events")
        if html:
            events = await agent.scan_url(results["urls"][0], html=html)
        else:
            events = await agent.run()
        results["url_errors"] = dict(agent.errors)
        results["events_extracted"] = len(events)
        results["dates_confirmed"] = sum(1 for e in events if e.date_status == 'confirmed')
        results["locations_confirmed"] = sum(1 for e in events if e.location_status == 'confirmed')
        logger.info(f"Extracted {len(events)} events "
                    f"({results['dates_confirmed']} dates and {results['locations_confirmed']} locations confirmed)")

        if save_to_file:
            _save_stage(f"1_extracted_events_{batch_id}.json", [e.to_dict() for e in events])

        if not events:
            logger.warning("No events extracted from URLs, stopping pipeline")
            return results

        # Step 2: normalize
        logger.info(f"Step 2: Normalizing {len(events)} events")
        normalized = normalize_events(events, default_timezone, tag_keyword_map)
        results["events_normalized"] = normalized.count
        results["normalization_errors"] = normalized.errors
        for error in normalized.errors:
            logger.warning(f"Normalization: {error}")

        if save_to_file:
            _save_stage(f"2_normalized_events_{batch_id}.json", normalized.to_dict())

        if not normalized.ok:
            logger.warning("No events survived normalization, stopping pipeline")
            return results

        # Step 3: upsert
        logger.info(f"Step 3: Upserting {normalized.count} events")
        summary = await store.upsert_events(normalized.events, publish=publish)
        results["upsert"] = summary.to_dict()
        return results

    except Exception as e:
        logger.error(f"Error in pipeline: {str(e)}")
        logger.error(traceback.format_exc())
        results["error"] = str(e)
        return results

    finally:
        pipeline_end = datetime.now()
        results["end_time"] = pipeline_end.isoformat()
        results["duration_seconds"] = (pipeline_end - pipeline_start).total_seconds()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Event page extraction pipeline")

    sources_group = parser.add_argument_group('URL Sources')
    sources_group.add_argument("--urls", type=str, nargs="+", default=[],
                               help="Specific URLs to scan for events")
    sources_group.add_argument("--sources-file", type=str,
                               help="JSON file containing URL sources to scan")
    sources_group.add_argument("--html-file", type=str,
                               help="Use this saved HTML instead of fetching (single URL only)")
    sources_group.add_argument("--hint", type=str,
                               help="Hint text passed to the extractor for every URL")

    api_group = parser.add_argument_group('API Options')
    api_group.add_argument("--username", type=str, default=EVENTS_API_USERNAME,
                           help="Events API username (default: from environment)")
    api_group.add_argument("--password", type=str, default=EVENTS_API_PASSWORD,
                           help="Events API password (default: from environment)")
    api_group.add_argument("--api-url", type=str, default=EVENTS_API_URL,
                           help="Events API URL (default: from environment)")

    pipeline_group = parser.add_argument_group('Pipeline Options')
    pipeline_group.add_argument("--publish", action="store_true",
                                help="Publish events instead of leaving new ones pending")
    pipeline_group.add_argument("--dry-run", action="store_true",
                                help="Upsert into an in-memory store instead of the API")
    pipeline_group.add_argument("--no-render", action="store_true",
                                help="Skip the headless browser and use plain HTTP fetches")
    pipeline_group.add_argument("--timezone", type=str, default=DEFAULT_TIMEZONE,
                                help=f"Default timezone for timed events (default: {DEFAULT_TIMEZONE})")
    pipeline_group.add_argument("--tag-keywords-file", type=str, default=TAG_KEYWORDS_FILE,
                                help="JSON file mapping tags to keyword lists")
    pipeline_group.add_argument("--save-files", action="store_true", default=SAVE_FILES,
                                help="Save intermediate JSON files for each step")
    pipeline_group.add_argument("--output", type=str, default="url_results.json",
                                help="Output file for pipeline results (default: url_results.json)")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    if not OPENAI_API_KEY_SET:
        logger.warning("OPENAI_API_KEY not set. Only the generic scraper will find events.")

    if not args.urls and not args.sources_file:
        logger.error("No URLs or sources file provided. Please specify at least one URL source.")
        parser.print_help()
        return 2

    html = None
    if args.html_file:
        if len(args.urls) != 1 or args.sources_file:
            logger.error("--html-file requires exactly one URL in --urls")
            return 2
        with open(args.html_file, 'r', encoding='utf-8') as f:
            html = f.read()

    if args.dry_run:
        logger.info("DRY RUN MODE - Events will be stored in memory only")
        store = InMemoryEventStore()
    else:
        if not args.username or not args.password:
            logger.error("API username and password are required when not in dry-run mode")
            return 2
        store = EventApiClient(args.username, args.password, args.api_url, delay_between_requests=REQUEST_DELAY)

    tag_keyword_map = load_tag_keywords(args.tag_keywords_file)

    browser = BrowserHandle()
    try:
        if not args.no_render and html is None:
            await browser.start()
        agent = EventURLAgent(
            sources_file=args.sources_file,
            urls=args.urls,
            fetcher=PageFetcher(browser),
            hint=args.hint,
        )
        results = await process_urls(
            agent,
            store,
            publish=args.publish,
            default_timezone=args.timezone,
            tag_keyword_map=tag_keyword_map,
            html=html,
            save_to_file=args.save_files,
        )
    finally:
        await browser.close()

    summary = {
        "timestamp": datetime.now().isoformat(),
        "urls_processed": len(results["urls"]),
        "sources_file": args.sources_file,
        "total_events_extracted": results["events_extracted"],
        "total_dates_confirmed": results["dates_confirmed"],
        "total_locations_confirmed": results["locations_confirmed"],
        "total_events_normalized": results["events_normalized"],
        "upsert": results["upsert"],
        "dry_run": args.dry_run,
        "pipeline_results": results,
    }
    with open(args.output, 'w', encoding='utf-8') as f:
        json.dump(summary, f, indent=2)

    logger.info("======= PIPELINE SUMMARY =======")
    logger.info(f"URLs processed: {summary['urls_processed']}")
    if results["url_errors"]:
        logger.info(f"URLs failed: {len(results['url_errors'])}")
    logger.info(f"Total events extracted: {summary['total_events_extracted']}")
    logger.info(f"Dates confirmed: {summary['total_dates_confirmed']}")
    logger.info(f"Locations confirmed: {summary['total_locations_confirmed']}")
    logger.info(f"Total events normalized: {summary['total_events_normalized']}")
    if summary["upsert"]:
        upsert = summary["upsert"]
        logger.info(f"Created: {upsert['created']}, updated: {upsert['updated']}, "
                    f"skipped: {upsert['skipped']}, errors: {upsert['errors']}")
    logger.info(f"Results saved to: {args.output}")
    logger.info("==============================")
    return 1 if "error" in results else 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
