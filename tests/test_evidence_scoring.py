"""
Tests for the region-scoring heuristics.
"""

from EventEvidenceScoring import (
    HEAD_AREA_PENALTY,
    MAX_CANDIDATE_DAY_PENALTY,
    MAX_LINE_DAY_PENALTY,
    NO_LOCATION_PENALTY,
    YEAR_ADJACENT,
    YEAR_EXACT,
    YEAR_NONE,
    missing_keywords,
    rank_snippet,
    score_container,
    score_direct_candidate,
    score_line_parse,
    year_penalty,
)


class TestContainerScore:

    def test_complete_container_scores_low(self):
        score = score_container('Austin Ad Summit', 'Austin Ad Summit March 10-12, 2026 Austin, TX',
                                'Austin Ad Summit', ['austin'], 2026)
        assert score.total == -10
        assert score.date_penalty == 0
        assert score.location_adjustment == -10

    def test_bare_container_collects_penalties(self):
        score = score_container('Austin Ad Summit', 'Austin Ad Summit',
                                'Austin Ad Summit', ['denver'], 2026)
        assert score.date_penalty == 20
        assert score.location_adjustment == 10
        assert score.keyword_penalty == 15
        assert score.year_penalty == 10
        assert score.total == 55

    def test_long_text_penalized(self):
        long_text = 'x' * 350
        score = score_container(long_text, long_text, 'Title', [], None)
        assert score.length_penalty == 70
        assert score.length_deviation == 345

    def test_scores_order_by_total(self):
        good = score_container('A', 'A Mar 3, 2026 Austin, TX', 'A', [], 2026)
        bad = score_container('A', 'A', 'A', [], 2026)
        assert good < bad


class TestLineAndCandidateScores:

    def test_location_dominates_line_score(self):
        with_location = score_line_parse(True, 20, 1, False)
        without_location = score_line_parse(False, 0, 0, False)
        assert with_location < without_location
        assert without_location == NO_LOCATION_PENALTY

    def test_day_difference_capped(self):
        assert score_line_parse(True, 400, 0, False) == MAX_LINE_DAY_PENALTY
        assert score_line_parse(True, None, 0, True) == 5

    def test_direct_candidate(self):
        container = score_container('A', 'A', 'A', [], None)
        assert score_direct_candidate(container, 1000, False) == container.total + MAX_CANDIDATE_DAY_PENALTY
        assert score_direct_candidate(container, None, True) == container.total + 10


class TestSnippetRank:

    def test_year_penalty_levels(self):
        assert year_penalty('in 2026', 2026) == YEAR_EXACT
        assert year_penalty('in 2025', 2026) == YEAR_ADJACENT
        assert year_penalty('no year', 2026) == YEAR_NONE
        assert year_penalty('anything', None) == YEAR_EXACT

    def test_missing_keywords_is_case_insensitive(self):
        assert missing_keywords('Austin Ad Summit', ['austin', 'summit', 'denver']) == 1

    def test_body_occurrence_beats_head_occurrence(self):
        head = rank_snippet('Expo March 3, 2026', 'Expo', [], 2026, index=10, body_index=100)
        body = rank_snippet('Expo March 3, 2026', 'Expo', [], 2026, index=500, body_index=100)

        assert head.head_penalty == HEAD_AREA_PENALTY
        assert body.head_penalty == 0
        assert body < head

    def test_year_outranks_position(self):
        early = rank_snippet('Expo March 3, 2024', 'Expo', [], 2026, index=200, body_index=100)
        late = rank_snippet('Expo March 3, 2026', 'Expo', [], 2026, index=900, body_index=100)
        assert late < early
