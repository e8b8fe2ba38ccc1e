"""
Tests for the text-generation wrapper and generated-output parsing.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from EventTextGenerator import (
    AgentTextGenerator,
    GenerationError,
    fix_incomplete_json,
    parse_event_array,
    strip_code_fence,
)


class TestParseEventArray:

    def test_plain_array(self):
        assert parse_event_array('[{"title": "A"}]') == [{'title': 'A'}]

    def test_fenced_array(self):
        assert parse_event_array('```json\n[{"title": "A"}]\n```') == [{'title': 'A'}]

    def test_events_wrapper_object(self):
        assert parse_event_array('{"events": [{"title": "A"}]}') == [{'title': 'A'}]

    def test_non_array_json_is_empty(self):
        assert parse_event_array('{"title": "A"}') == []

    def test_fenced_block_inside_prose(self):
        text = 'Here are the events:\n```json\n[{"title": "A"}]\n```\nLet me know!'
        assert parse_event_array(text) == [{'title': 'A'}]

    def test_array_after_prose(self):
        assert parse_event_array('Sure! [{"title": "A"}, {"title": "B"}]') == [{'title': 'A'}, {'title': 'B'}]

    def test_truncated_response_keeps_complete_objects(self):
        text = '[{"title": "A"}, {"title": "B", "loca'
        assert parse_event_array(text) == [{'title': 'A'}]

    def test_non_object_items_dropped(self):
        assert parse_event_array('[1, "x", {"title": "A"}]') == [{'title': 'A'}]

    @pytest.mark.parametrize('text', [None, '', 'No events were found on this page.'])
    def test_unusable_output(self, text):
        assert parse_event_array(text) == []


class TestRepairHelpers:

    def test_strip_code_fence(self):
        assert strip_code_fence('```\n[]\n```') == '[]'
        assert strip_code_fence('  []  ') == '[]'

    def test_fix_incomplete_json(self):
        assert fix_incomplete_json('[{"a": 1},') == '[{"a": 1}]'
        assert fix_incomplete_json('[{"a": 1}, {"b": ') == '[{"a": 1}]'
        assert fix_incomplete_json('[{"a": 1}]') == '[{"a": 1}]'


class TestAgentTextGenerator:

    def test_generate_returns_final_output(self):
        generator = AgentTextGenerator(model='gpt-4o-mini', temperature=0.1, max_tokens=100)
        run = AsyncMock(return_value=MagicMock(final_output='[{"title": "A"}]'))

        with patch('EventTextGenerator.Runner.run', run):
            text = asyncio.run(generator.generate('system text', 'user text'))

        assert text == '[{"title": "A"}]'
        agent, prompt = run.call_args.args
        assert prompt == 'user text'
        assert agent.instructions == 'system text'
        assert agent.model_settings.temperature == 0.1
        assert agent.model_settings.max_tokens == 100

    @pytest.mark.parametrize('output', ['', '   ', None])
    def test_empty_output_raises(self, output):
        generator = AgentTextGenerator()
        run = AsyncMock(return_value=MagicMock(final_output=output))

        with patch('EventTextGenerator.Runner.run', run):
            with pytest.raises(GenerationError):
                asyncio.run(generator.generate('s', 'u'))

    def test_timeout_raises(self):
        generator = AgentTextGenerator(timeout=0.01)

        async def slow_run(agent, prompt):
            await asyncio.sleep(1)

        with patch('EventTextGenerator.Runner.run', slow_run):
            with pytest.raises(GenerationError, match='timed out'):
                asyncio.run(generator.generate('s', 'u'))
