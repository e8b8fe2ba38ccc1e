"""
Tests for candidate verification against page HTML.
"""

from datetime import date
from unittest.mock import patch

import pytest

from EventModels import CalendarDate, ExtractedEvent, StrictDateResult
from EventEvidenceVerifier import (
    MULTI_DAY_MARKER,
    apply_multi_day_rule,
    corroborate_location,
    ensure_date_evidence,
    extract_keywords_from_url,
    extract_year_from_url,
    find_best_date,
    find_best_location,
    normalize_location_text,
    verify_with_context,
)


JSON_LD_PAGE = """
<html>
<head>
<title>Events</title>
<script type="application/ld+json">
{"@type": "Event", "name": "Austin Ad Summit", "startDate": "2026-03-10",
 "endDate": "2026-03-12", "location": "Austin, TX"}
</script>
</head>
<body>
<div class="card"><h2>Austin Ad Summit</h2><p>Join marketers for three days of sessions.</p></div>
</body>
</html>
"""


def candidate(title: str, **kwargs) -> ExtractedEvent:
    return ExtractedEvent(title=title, **kwargs)


def day(year: int, month: int, d: int) -> CalendarDate:
    return CalendarDate(date(year, month, d))


class TestVerifyWithContext:

    def test_json_ld_dates_and_location(self):
        event = candidate('Austin Ad Summit', url='https://example.com/events',
                          start=day(2026, 3, 10), end=day(2026, 3, 12), location='Austin, TX')
        result = verify_with_context(event, JSON_LD_PAGE)

        assert result.date_status == 'confirmed'
        assert result.evidence_context == 'json-ld'
        assert result.start == day(2026, 3, 10)
        assert result.end == day(2026, 3, 12)
        assert result.location == 'Austin, TX'
        assert result.location_status == 'confirmed'
        assert result.location_evidence_context == 'json-ld'

    def test_hallucinated_location_cleared(self):
        html = '<ul><li><strong>Retail Media Summit</strong> March 10-12, 2026</li></ul>'
        event = candidate('Retail Media Summit', start=day(2026, 3, 10), end=day(2026, 3, 12),
                          location='Denver, CO')
        result = verify_with_context(event, html)

        assert result.date_status == 'confirmed'
        assert result.evidence == 'March 10-12, 2026'
        assert result.evidence_context == 'visible-text'
        assert result.location is None
        assert result.location_status == 'tbd'

    def test_missing_date_cleared(self):
        html = '<div><h2>Quarterly Mixer</h2><p>Join us for drinks.</p></div>'
        event = candidate('Quarterly Mixer', start=day(2026, 5, 1), end=day(2026, 5, 1))
        result = verify_with_context(event, html)

        assert result.date_status == 'tbd'
        assert result.start is None
        assert result.end is None
        assert result.evidence is None

    def test_cross_month_range_rolls_into_next_year(self):
        html = '<ul><li><a href="/x">Winter Expo</a> Dec 28 - Jan 3</li></ul>'
        event = candidate('Winter Expo', start=day(2025, 12, 28))
        result = verify_with_context(event, html)

        assert result.start == day(2025, 12, 28)
        assert result.end == day(2026, 1, 3)

    def test_description_fallback(self):
        event = candidate('Boise Data Day', description='Taking place June 5, 2026 in Boise, Idaho.')
        result = verify_with_context(event, '<p>Nothing here</p>')

        assert result.start == day(2026, 6, 5)
        assert result.evidence_context == 'description'
        assert result.location == 'Boise, ID'
        assert result.location_evidence_context == 'description'

    def test_table_row_resolved_from_html_window(self):
        html = ('<html><body><table><tr><td>Gala Night</td><td>May 2, 2026</td>'
                '<td>Reno, NV</td></tr></table></body></html>')
        result = verify_with_context(candidate('Gala Night'), html)

        assert result.start == day(2026, 5, 2)
        assert result.location == 'Reno, NV'
        assert result.location_status == 'confirmed'

    def test_agreeing_page_location_wins(self):
        html = '<ul><li><b>Ad Tech Day</b> April 2, 2026 at Austin Convention Center, TX</li></ul>'
        event = candidate('Ad Tech Day', start=day(2026, 4, 2), location='Austin, TX')
        result = verify_with_context(event, html)

        assert result.location == 'Austin Convention Center, TX'
        assert result.location_status == 'confirmed'
        assert result.location_evidence_context == 'visible-text'

    def test_generated_location_kept_when_page_mentions_it(self):
        html = ('<html><body><div><h3>Ad Tech Day</h3><p>April 2, 2026</p></div>'
                '<footer>Our office: Austin, TX</footer></body></html>')
        event = candidate('Ad Tech Day', start=day(2026, 4, 2), location='Austin, TX')
        result = verify_with_context(event, html)

        assert result.location == 'Austin, TX'
        assert result.location_evidence == 'Austin, TX'

    def test_title_case_word_is_not_a_state(self):
        html = '<div><h3>Retail Media Summit</h3><p>March 10, 2026</p><p>Workshops, In Person</p></div>'
        event = candidate('Retail Media Summit', start=day(2026, 3, 10))
        result = verify_with_context(event, html)

        assert result.start == day(2026, 3, 10)
        assert result.location is None
        assert result.location_status == 'tbd'

    def test_failure_clears_both_fields(self):
        event = candidate('Anything', start=day(2026, 1, 1), location='Austin, TX',
                          date_status='confirmed', location_status='confirmed')
        with patch('EventEvidenceVerifier._verify', side_effect=RuntimeError('boom')):
            result = verify_with_context(event, '<p>Anything</p>')

        assert result.date_status == 'tbd'
        assert result.start is None
        assert result.location_status == 'tbd'
        assert result.location is None

    def test_ensure_date_evidence_keeps_order(self):
        html = '<ul><li>First Talk May 1, 2026</li><li>Second Talk May 9, 2026</li></ul>'
        results = ensure_date_evidence([candidate('First Talk'), candidate('Second Talk')], html)

        assert [e.title for e in results] == ['First Talk', 'Second Talk']
        assert results[0].start == day(2026, 5, 1)
        assert results[1].start == day(2026, 5, 9)


class TestMultiDayRule:

    def test_generated_end_kept(self):
        original = candidate('Expo', start=day(2026, 3, 10), end=day(2026, 3, 12))
        verified = StrictDateResult(day(2026, 3, 10), day(2026, 3, 10), 'confirmed', 'March 10, 2026',
                                    'visible-text')
        result = apply_multi_day_rule(original, verified)

        assert result.end == day(2026, 3, 12)
        assert result.evidence == 'March 10, 2026' + MULTI_DAY_MARKER

    def test_not_applied_when_start_drifts(self):
        original = candidate('Expo', start=day(2026, 3, 10), end=day(2026, 3, 12))
        verified = StrictDateResult(day(2026, 3, 20), day(2026, 3, 20), 'confirmed', 'March 20, 2026',
                                    'visible-text')
        assert apply_multi_day_rule(original, verified) is verified

    def test_not_applied_to_single_day_candidate(self):
        original = candidate('Expo', start=day(2026, 3, 10), end=day(2026, 3, 10))
        verified = StrictDateResult(day(2026, 3, 10), day(2026, 3, 10), 'confirmed', 'March 10, 2026',
                                    'visible-text')
        assert apply_multi_day_rule(original, verified) is verified


class TestTextHelpers:

    def test_url_year_and_keywords(self):
        url = 'https://example.com/events/ad-week-austin-2026'
        assert extract_year_from_url(url) == 2026
        assert extract_keywords_from_url(url) == ['week', 'austin']
        assert extract_keywords_from_url(None) == []

    @pytest.mark.parametrize('text, expected', [
        ('Chicago', 'Chicago'),
        ('· Austin, TX', 'Austin, TX'),
        ('Springfield, Illinois', 'Springfield, IL'),
        ('Isle of Palms', 'Isle of Palms'),
        ('Chicago Register Now', 'Chicago'),
        ('Register now', None),
        ('join us downtown', None),
        ('Room 204', None),
        ('', None),
    ])
    def test_normalize_location_text(self, text, expected):
        assert normalize_location_text(text) == expected

    def test_corroborate_location_with_venue_between(self):
        assert corroborate_location('Austin, TX', '<p>Austin Convention Center, TX</p>') == \
            'Austin Convention Center, TX'

    def test_corroborate_exact_substring(self):
        assert corroborate_location('Austin, TX', '<p>In Austin, TX soon</p>') == 'Austin, TX'

    def test_corroborate_rejects_absent_city(self):
        assert corroborate_location('Denver, CO', '<p>Austin, TX</p>') is None

    def test_best_date_near_title(self):
        plain = 'Old Expo Jan 5, 2025. ' + 'x' * 300 + ' Spring Gala Apr 2, 2026'
        span = find_best_date(plain, 'Spring Gala', 2026)
        assert span.start == date(2026, 4, 2)

    def test_best_location_prefers_text_after_title(self):
        plain = 'Seattle, WA Spring Gala in Portland, OR'
        assert find_best_location(plain, 'Spring Gala') == ('Portland, OR', 'Portland, OR')
