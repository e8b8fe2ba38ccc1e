# EventEvidenceScoring.py
"""
Scoring heuristics used to pick the page region that describes an event.

Every score is "lower is better". Each heuristic is a small named function
returning a comparable record so it can be tested on its own.
"""

from dataclasses import dataclass
from typing import List, Optional

from EventTextPatterns import has_city_state, has_date_pattern

# Container scoring
LONG_ELEMENT_LENGTH = 200
LONG_ELEMENT_PENALTY = 50        # element text far longer than a title line
LONG_CONTAINER_LENGTH = 300
LONG_CONTAINER_PENALTY = 20      # container likely spans several events
MISSING_DATE_PENALTY = 20        # nothing to verify a date against
CITY_STATE_BONUS = -10           # container names a "City, ST"
MISSING_CITY_STATE_PENALTY = 10
CONTAINER_KEYWORD_PENALTY = 15   # per URL/location keyword absent from the container
YEAR_MISMATCH_PENALTY = 10       # expected year absent from the container

# Line-level parse scoring
NO_LOCATION_PENALTY = 50         # a parse that also finds a location is far more trustworthy
MAX_LINE_DAY_PENALTY = 30        # cap on the date-distance contribution
LINE_KEYWORD_PENALTY = 10
LINE_LOCATION_DIFFERS_PENALTY = 5

# Combining a container with its best line parse
MAX_CANDIDATE_DAY_PENALTY = 60
CANDIDATE_LOCATION_DIFFERS_PENALTY = 10

# Snippet occurrence ranking
HEAD_AREA_PENALTY = 5            # occurrence sits before <body>, e.g. <title> or meta
UNRECOVERABLE_TITLE_PENALTY = 5  # title only present inside markup, not as text

YEAR_EXACT = 0
YEAR_ADJACENT = 1
YEAR_NONE = 2


def missing_keywords(text: str, keywords: List[str]) -> int:
    lowered = text.lower()
    return sum(1 for keyword in keywords if keyword not in lowered)


@dataclass(order=True)
class ContainerScore:
    total: int
    length_deviation: int = 0
    length_penalty: int = 0
    date_penalty: int = 0
    location_adjustment: int = 0
    keyword_penalty: int = 0
    year_penalty: int = 0


def score_container(element_text: str, container_text: str, title: str,
                    keywords: List[str], expected_year: Optional[int]) -> ContainerScore:
    """
    Score how well a title-bearing element and its container describe one event.

    Args:
        element_text: Plain text of the element holding the title
        container_text: Plain text of its nearest block container
        title: Candidate title
        keywords: URL/location keywords expected near the event
        expected_year: Year the event should fall in, if known
    """
    length_deviation = abs(len(element_text) - len(title))
    length_penalty = 0
    if len(element_text) > LONG_ELEMENT_LENGTH:
        length_penalty += LONG_ELEMENT_PENALTY
    if len(container_text) > LONG_CONTAINER_LENGTH:
        length_penalty += LONG_CONTAINER_PENALTY
    date_penalty = 0 if has_date_pattern(container_text) else MISSING_DATE_PENALTY
    location_adjustment = CITY_STATE_BONUS if has_city_state(container_text) else MISSING_CITY_STATE_PENALTY
    keyword_penalty = missing_keywords(container_text, keywords) * CONTAINER_KEYWORD_PENALTY
    year_penalty = 0
    if expected_year and str(expected_year) not in container_text:
        year_penalty = YEAR_MISMATCH_PENALTY

    total = (length_deviation + length_penalty + date_penalty + location_adjustment
             + keyword_penalty + year_penalty)
    return ContainerScore(total, length_deviation, length_penalty, date_penalty,
                          location_adjustment, keyword_penalty, year_penalty)


def score_line_parse(found_location: bool, day_difference: Optional[float],
                     keyword_misses: int, location_differs: bool) -> int:
    """Score a date/location parse taken from the lines around a title."""
    score = 0 if found_location else NO_LOCATION_PENALTY
    if day_difference is not None:
        score += min(int(day_difference), MAX_LINE_DAY_PENALTY)
    score += keyword_misses * LINE_KEYWORD_PENALTY
    if location_differs:
        score += LINE_LOCATION_DIFFERS_PENALTY
    return score


def score_direct_candidate(container: ContainerScore, day_difference: Optional[float],
                           location_differs: bool) -> int:
    """Combine a container score with the date drift of its refined parse."""
    score = container.total
    if day_difference is not None:
        score += min(int(day_difference), MAX_CANDIDATE_DAY_PENALTY)
    if location_differs:
        score += CANDIDATE_LOCATION_DIFFERS_PENALTY
    return score


def year_penalty(text: str, expected_year: Optional[int]) -> int:
    if not expected_year:
        return YEAR_EXACT
    if str(expected_year) in text:
        return YEAR_EXACT
    if str(expected_year - 1) in text or str(expected_year + 1) in text:
        return YEAR_ADJACENT
    return YEAR_NONE


@dataclass(order=True)
class SnippetRank:
    """Sort key for a title occurrence; fields compare in priority order."""
    year_penalty: int
    date_penalty: int
    keyword_penalty: int
    head_penalty: int
    location_penalty: int
    title_penalty: int
    index: int


def rank_snippet(plain_text: str, title: str, keywords: List[str], expected_year: Optional[int],
                 index: int, body_index: int) -> SnippetRank:
    """
    Rank one title occurrence by the plain text of the snippet around it.

    Args:
        plain_text: Tag-stripped snippet text
        title: Candidate title
        keywords: URL/location keywords expected near the event
        expected_year: Year the event should fall in, if known
        index: Offset of the occurrence in the raw HTML
        body_index: Offset of "<body" in the raw HTML (-1 if absent)
    """
    return SnippetRank(
        year_penalty=year_penalty(plain_text, expected_year),
        date_penalty=0 if has_date_pattern(plain_text) else 1,
        keyword_penalty=missing_keywords(plain_text, keywords),
        head_penalty=HEAD_AREA_PENALTY if body_index != -1 and index < body_index else 0,
        location_penalty=0 if has_city_state(plain_text) else 1,
        title_penalty=0 if title.lower() in plain_text.lower() else UNRECOVERABLE_TITLE_PENALTY,
        index=index,
    )
