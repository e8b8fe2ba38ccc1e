"""
Tests for mapping generated events into candidates.
"""

from datetime import date

import pytest

from EventModels import CalendarDate, ExtractedEvent, RawAgentEvent
from EventCandidateMapper import (
    dedupe_events,
    derive_source_name,
    map_agent_event,
    map_agent_events,
    parse_display_date,
)


class TestParseDisplayDate:

    @pytest.mark.parametrize('text, expected', [
        ('Oct 29, 2025', date(2025, 10, 29)),
        ('October 29, 2025', date(2025, 10, 29)),
        ('Sept 5, 2026', date(2026, 9, 5)),
        ('2026-03-10', date(2026, 3, 10)),
        ('03/10/2026', date(2026, 3, 10)),
    ])
    def test_accepted_formats(self, text, expected):
        assert parse_display_date(text) == CalendarDate(expected)

    @pytest.mark.parametrize('text', [None, '', 'TBD', 'Spring 2026'])
    def test_rejected_values(self, text):
        assert parse_display_date(text) is None


class TestDeriveSourceName:

    def test_domain_label(self):
        assert derive_source_name('https://www.eventbrite.com/e/123') == 'Eventbrite'

    def test_compound_suffix(self):
        assert derive_source_name('https://news.bbc.co.uk/events') == 'BBC'

    def test_short_provided_name_is_acronym(self):
        assert derive_source_name('https://example.com', 'iab') == 'IAB'

    def test_long_provided_name_keeps_casing(self):
        assert derive_source_name('https://example.com', 'adExchanger') == 'AdExchanger'

    def test_missing_url(self):
        assert derive_source_name(None) is None


class TestMapAgentEvents:

    def test_dict_item_mapped_with_tbd_statuses(self):
        raw = [{
            'title': ' Austin Ad Summit ',
            'dates': {'start': 'Mar 10, 2026', 'end': 'Mar 12, 2026'},
            'location': 'Austin, TX',
            'link': '/events/austin',
            'source': 'Example Events',
            'description': 'Three days of sessions.',
        }]
        events = map_agent_events(raw, 'https://example.com/calendar')

        assert len(events) == 1
        event = events[0]
        assert event.title == 'Austin Ad Summit'
        assert event.url == 'https://example.com/events/austin'
        assert event.start == CalendarDate(date(2026, 3, 10))
        assert event.end == CalendarDate(date(2026, 3, 12))
        assert event.location == 'Austin, TX'
        assert event.source == 'Example Events'
        assert event.date_status == 'tbd'
        assert event.location_status == 'tbd'

    def test_end_defaults_to_start_and_link_to_page(self):
        event = map_agent_event(RawAgentEvent(title='Mixer', start='May 1, 2026'), 'https://example.com/e')

        assert event.end == event.start
        assert event.url == 'https://example.com/e'
        assert event.source == 'Example'

    def test_untitled_and_non_object_items_dropped(self):
        raw = [{'title': ''}, 'not an event', {'title': 'Kept'}]
        events = map_agent_events(raw, 'https://example.com')
        assert [e.title for e in events] == ['Kept']

    def test_duplicates_removed(self):
        raw = [
            {'title': 'Expo', 'dates': {'start': 'Mar 10, 2026'}, 'location': 'Austin, TX'},
            {'title': 'EXPO', 'dates': {'start': 'Mar 10, 2026'}, 'location': 'Austin, TX',
             'description': 'second copy'},
            {'title': 'Expo', 'dates': {'start': 'Mar 11, 2026'}, 'location': 'Austin, TX'},
        ]
        events = map_agent_events(raw, 'https://example.com')

        assert len(events) == 2
        assert events[0].description is None

    def test_dedupe_keeps_first(self):
        first = ExtractedEvent(title='A', location='X')
        events = dedupe_events([first, ExtractedEvent(title='a', location='X')])
        assert events == [first]
