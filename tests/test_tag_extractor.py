"""
Tests for tag normalization and keyword tagging.
"""

import json

from EventModels import ExtractedEvent
from EventTagExtractor import extract_tags, load_tag_keywords, normalize_tag, normalize_tags


class TestNormalizeTags:

    def test_normalize_tag(self):
        assert normalize_tag('Ad Tech!') == 'ad-tech'
        assert normalize_tag('  CTV  ') == 'ctv'
        assert normalize_tag('--data--') == 'data'
        assert normalize_tag(None) == ''

    def test_normalize_tags_sorted_and_unique(self):
        assert normalize_tags(['Video', 'video', 'Ad Tech', '', '!!']) == ['ad-tech', 'video']


class TestExtractTags:

    def test_keywords_in_title_and_description(self):
        event = ExtractedEvent(title='Programmatic Summit',
                               description='Sessions on connected TV and measurement.')
        assert extract_tags(event) == ['ctv', 'measurement', 'programmatic']

    def test_keyword_inside_word_does_not_match(self):
        assert extract_tags(ExtractedEvent(title='Metadata Day')) == []

    def test_existing_tags_kept(self):
        event = ExtractedEvent(title='Networking Night', tags=['Community'])
        assert extract_tags(event) == ['community']

    def test_html_searched_too(self):
        event = ExtractedEvent(title='Networking Night')
        assert extract_tags(event, html='<p>Privacy workshop</p>') == ['privacy']

    def test_custom_keyword_map(self):
        event = ExtractedEvent(title='Retail Media Summit')
        assert extract_tags(event, tag_keyword_map={'Retail Media': ['retail media']}) == ['retail-media']


class TestLoadTagKeywords:

    def test_load_from_file(self, tmp_path):
        path = tmp_path / 'tags.json'
        path.write_text(json.dumps({'commerce': ['retail', 'shopping'], 'ai': 'machine learning'}))

        assert load_tag_keywords(str(path)) == {
            'commerce': ['retail', 'shopping'],
            'ai': ['machine learning'],
        }

    def test_missing_or_invalid_file(self, tmp_path):
        bad = tmp_path / 'bad.json'
        bad.write_text('{not json')

        assert load_tag_keywords(None) is None
        assert load_tag_keywords(str(tmp_path / 'missing.json')) is None
        assert load_tag_keywords(str(bad)) is None
