# EventTagExtractor.py

import re
import json
import logging
from typing import Dict, Iterable, List, Optional

from EventModels import ExtractedEvent

logger = logging.getLogger('EventTagExtractor')

# Built-in keyword map used when the caller does not supply one
TAG_KEYWORDS: Dict[str, List[str]] = {
    'adtech': ['adtech', 'ad tech', 'advertising technology', 'advertising tech'],
    'publishers': ['publisher', 'publishing', 'media publisher', 'content publisher'],
    'programmatic': ['programmatic', 'programmatic advertising', 'rtb', 'real-time bidding'],
    'ctv': ['ctv', 'connected tv', 'streaming tv', 'ott', 'over-the-top'],
    'data': ['data', 'data science', 'data analytics', 'big data', 'data platform'],
    'privacy': ['privacy', 'gdpr', 'ccpa', 'data privacy', 'consumer privacy'],
    'measurement': ['measurement', 'attribution', 'analytics', 'metrics', 'reporting'],
    'marketing': ['marketing', 'digital marketing', 'brand marketing', 'performance marketing'],
    'mobile': ['mobile', 'mobile advertising', 'app marketing', 'mobile marketing'],
    'video': ['video', 'video advertising', 'video marketing', 'streaming video'],
}


def normalize_tag(tag: Optional[str]) -> str:
    """Lowercase, drop punctuation and hyphenate: "Ad Tech!" -> "ad-tech"."""
    if not tag:
        return ''
    normalized = str(tag).lower().strip()
    normalized = re.sub(r'[^\w\s-]', '', normalized)
    normalized = re.sub(r'\s+', '-', normalized)
    normalized = re.sub(r'-+', '-', normalized)
    return normalized.strip('-_')


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Normalized, de-duplicated, sorted tags."""
    return sorted({normalize_tag(tag) for tag in (tags or []) if normalize_tag(tag)})


def _matches(text: str, keywords: List[str]) -> bool:
    for keyword in keywords:
        keyword = keyword.lower().strip()
        # Leading word boundary so "data" does not hit "update"
        if keyword and re.search(rf"\b{re.escape(keyword)}", text):
            return True
    return False


def extract_tags(event: ExtractedEvent, html: Optional[str] = None,
                 tag_keyword_map: Optional[Dict[str, List[str]]] = None) -> List[str]:
    """
    Tags for an event: supplied tags plus keyword matches.

    Args:
        event: Event whose title, description, source and location are searched
        html: Optional page HTML to search as well
        tag_keyword_map: Tag -> keywords; the built-in map is used when omitted

    Returns:
        Sorted list of normalized tags
    """
    tags = set(normalize_tags(event.tags))
    keyword_map = tag_keyword_map or TAG_KEYWORDS

    search_text = ' '.join(
        part for part in (event.title, event.description, event.source, event.location) if part
    ).lower()
    html_text = html.lower() if html else ''

    for tag, keywords in keyword_map.items():
        normalized = normalize_tag(tag)
        if not normalized:
            continue
        if _matches(search_text, keywords) or (html_text and _matches(html_text, keywords)):
            tags.add(normalized)

    return sorted(tags)


def load_tag_keywords(path: Optional[str]) -> Optional[Dict[str, List[str]]]:
    """
    Load a caller-supplied tag keyword map from a JSON file.

    Returns None (use the built-in map) when no path is given or the file is
    unusable.
    """
    if not path:
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.error(f"Tag keywords file not found: {path}")
        return None
    except json.JSONDecodeError:
        logger.error(f"Invalid JSON format in tag keywords file: {path}")
        return None

    if not isinstance(data, dict):
        logger.error(f"Tag keywords file must map tag names to keyword lists: {path}")
        return None
    keyword_map = {}
    for tag, keywords in data.items():
        if isinstance(keywords, str):
            keywords = [keywords]
        if isinstance(keywords, list):
            keyword_map[str(tag)] = [str(k) for k in keywords if k]
    logger.info(f"Loaded {len(keyword_map)} tag keyword groups from {path}")
    return keyword_map or None
