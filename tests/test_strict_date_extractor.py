"""
Tests for the evidence-first date extractor and its strategies.
"""

from datetime import date, datetime

import pytest

from EventModels import CalendarDate, Instant
from StrictDateExtractor import (
    DATE_STRATEGIES,
    extract_strict_dates,
    from_json_ld,
    from_meta_tags,
    from_visible_text,
)


def page(head: str = '', body: str = '') -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


def json_ld(payload: str) -> str:
    return f'<script type="application/ld+json">{payload}</script>'


class TestJsonLd:

    def test_date_only_event(self):
        html = page(json_ld('{"@type": "Event", "name": "Expo", '
                            '"startDate": "2026-03-10", "endDate": "2026-03-12"}'))
        result = extract_strict_dates(html)

        assert result.confirmed
        assert result.start == CalendarDate(date(2026, 3, 10))
        assert result.end == CalendarDate(date(2026, 3, 12))
        assert result.evidence_context == 'json-ld'
        assert '2026-03-10' in result.evidence
        assert '2026-03-12' in result.evidence

    def test_timed_event_stays_instant(self):
        html = page(json_ld('{"@type": "Event", "startDate": "2026-03-10T18:00:00-05:00"}'))
        result = extract_strict_dates(html)

        assert isinstance(result.start, Instant)
        assert result.start.value.hour == 18
        assert result.end == result.start

    def test_graph_container_and_subtype(self):
        html = page(json_ld('{"@context": "https://schema.org", "@graph": ['
                            '{"@type": "WebPage", "name": "Home"},'
                            '{"@type": "MusicEvent", "startDate": "2026-07-04"}]}'))
        result = extract_strict_dates(html)

        assert result.start == CalendarDate(date(2026, 7, 4))

    def test_trailing_commas_tolerated(self):
        html = page(json_ld('{"@type": "Event", "startDate": "2026-05-01",}'))
        assert extract_strict_dates(html).start == CalendarDate(date(2026, 5, 1))

    def test_end_before_start_collapses_to_start(self):
        html = page(json_ld('{"@type": "Event", "startDate": "2026-05-10", "endDate": "2026-05-01"}'))
        result = extract_strict_dates(html)
        assert result.end == result.start

    def test_non_event_ignored(self):
        html = page(json_ld('{"@type": "Organization", "startDate": "2026-05-10"}'))
        assert from_json_ld(extract_soup(html)) is None


class TestMetaTags:

    def test_event_meta_tags(self):
        html = page('<meta property="event:start_time" content="2026-05-01T09:00:00">'
                    '<meta property="event:end_time" content="2026-05-01T17:00:00">')
        result = extract_strict_dates(html)

        assert result.evidence_context == 'meta-tags'
        assert result.start == Instant(datetime(2026, 5, 1, 9, 0))
        assert result.end == Instant(datetime(2026, 5, 1, 17, 0))
        assert result.evidence == '2026-05-01T09:00:00'

    def test_time_element_with_itemprop(self):
        html = page(body='<time itemprop="startDate" datetime="2026-09-15">Sep 15</time>')
        result = from_meta_tags(extract_soup(html))
        assert result.start == CalendarDate(date(2026, 9, 15))


class TestVisibleText:

    def test_cross_month_range_first(self):
        html = page(body='<p>Join us Jan 29 - Feb 2, 2026 in Austin</p>')
        result = extract_strict_dates(html)

        assert result.evidence_context == 'visible-text'
        assert result.start == CalendarDate(date(2026, 1, 29))
        assert result.end == CalendarDate(date(2026, 2, 2))
        assert result.evidence == 'Jan 29 - Feb 2, 2026'

    def test_year_taken_from_page_text(self):
        html = page(body='<h1>Summit 2026</h1><p>Oct 5-7</p>')
        result = from_visible_text(extract_soup(html))

        assert result.start == CalendarDate(date(2026, 10, 5))
        assert result.end == CalendarDate(date(2026, 10, 7))

    def test_sept_abbreviation(self):
        result = extract_strict_dates(page(body='<p>Fall Expo Sept 12, 2026</p>'))

        assert result.start == CalendarDate(date(2026, 9, 12))
        assert result.evidence == 'Sept 12, 2026'

    def test_sept_in_cross_month_range(self):
        result = extract_strict_dates(page(body='<p>Harvest Week Sept 28 - Oct 2, 2026</p>'))

        assert result.start == CalendarDate(date(2026, 9, 28))
        assert result.end == CalendarDate(date(2026, 10, 2))

    def test_script_text_is_not_visible(self):
        html = page(body='<script>var d = "Oct 5, 2026";</script><p>Nothing scheduled</p>')
        assert from_visible_text(extract_soup(html)) is None


class TestStrategyOrder:

    def test_json_ld_beats_visible_text(self):
        html = page(json_ld('{"@type": "Event", "startDate": "2026-03-10"}'),
                    '<p>Apr 1, 2026</p>')
        assert extract_strict_dates(html).evidence_context == 'json-ld'

    def test_custom_strategy_list(self):
        html = page(json_ld('{"@type": "Event", "startDate": "2026-03-10"}'),
                    '<p>Apr 1, 2026</p>')
        result = extract_strict_dates(html, [from_visible_text])

        assert result.evidence_context == 'visible-text'
        assert result.start == CalendarDate(date(2026, 4, 1))

    def test_nothing_found_is_tbd(self):
        result = extract_strict_dates(page(body='<p>Coming soon</p>'))

        assert result.date_status == 'tbd'
        assert result.start is None
        assert result.evidence is None
        assert not result.confirmed

    @pytest.mark.parametrize('strategy', DATE_STRATEGIES)
    def test_each_strategy_returns_none_on_empty_page(self, strategy):
        assert strategy(extract_soup(page())) is None


def extract_soup(html: str):
    from bs4 import BeautifulSoup
    return BeautifulSoup(html, 'html.parser')
