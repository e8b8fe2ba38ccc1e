# EventTextGenerator.py

import re
import json
import asyncio
import logging
from typing import Any, Dict, List, Optional

from agents import Agent, Runner
from agents.model_settings import ModelSettings

from config import LLM_MAX_TOKENS, LLM_MODEL, LLM_TEMPERATURE, LLM_TIMEOUT_SECONDS, OPENAI_API_KEY_SET

logger = logging.getLogger('EventTextGenerator')

if not OPENAI_API_KEY_SET:
    logger.warning("OPENAI_API_KEY environment variable is not set. Text generation will fail.")


class GenerationError(Exception):
    """The text-generation service produced no usable output."""


class AgentTextGenerator:
    """
    Text-generation collaborator backed by the OpenAI Agents SDK.

    Each call builds an agent whose instructions are the system text and runs
    it once on the user text.
    """

    def __init__(self, model: str = LLM_MODEL, temperature: float = LLM_TEMPERATURE,
                 max_tokens: int = LLM_MAX_TOKENS, timeout: float = LLM_TIMEOUT_SECONDS):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    def _build_agent(self, system: str) -> Agent:
        return Agent(
            name="EventExtractor",
            instructions=system,
            model=self.model,
            model_settings=ModelSettings(
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            ),
        )

    async def generate(self, system: str, user: str) -> str:
        """
        Run one generation.

        Args:
            system: Fixed instructions
            user: Page-specific prompt

        Returns:
            Raw text output

        Raises:
            GenerationError: on timeout or empty output
        """
        agent = self._build_agent(system)
        try:
            result = await asyncio.wait_for(Runner.run(agent, user), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise GenerationError(f"Text generation timed out after {self.timeout}s")

        text = result.final_output
        if not isinstance(text, str) or not text.strip():
            raise GenerationError("Text generation returned empty output")
        return text


def strip_code_fence(text: str) -> str:
    trimmed = (text or '').strip()
    if trimmed.startswith('```'):
        trimmed = re.sub(r'^```(?:json)?', '', trimmed, flags=re.IGNORECASE)
        trimmed = re.sub(r'```$', '', trimmed.rstrip())
    return trimmed.strip()


def fix_incomplete_json(json_str: str) -> str:
    """
    Close brackets and braces left open by a truncated response.

    Args:
        json_str: A potentially incomplete JSON string

    Returns:
        Repaired JSON string (unchanged if nothing was missing)
    """
    fixed = json_str.rstrip()
    if fixed.endswith(','):
        fixed = fixed[:-1]

    # A response cut off inside an object: drop the partial object
    last_brace = fixed.rfind('}')
    if fixed.count('{') > fixed.count('}') and last_brace != -1:
        fixed = fixed[:last_brace + 1]
        logger.debug("Dropped truncated trailing object")

    missing_brackets = fixed.count('[') - fixed.count(']')
    if missing_brackets > 0:
        fixed += ']' * missing_brackets
        logger.debug(f"Added {missing_brackets} missing closing brackets")
    return fixed


def _as_event_list(parsed: Any) -> Optional[List[Dict[str, Any]]]:
    if isinstance(parsed, list):
        return [item for item in parsed if isinstance(item, dict)]
    if isinstance(parsed, dict) and isinstance(parsed.get('events'), list):
        return [item for item in parsed['events'] if isinstance(item, dict)]
    return None


def parse_event_array(text: Optional[str]) -> List[Dict[str, Any]]:
    """
    Parse the generated event array, trying progressively looser strategies.

    Args:
        text: Raw generated text

    Returns:
        List of raw event dicts; empty if nothing parses to an array
    """
    if not text:
        return []
    cleaned = strip_code_fence(text)

    # Strategy 1: the whole (fence-stripped) response
    try:
        events = _as_event_list(json.loads(cleaned))
        if events is not None:
            return events
        logger.warning("Agent returned non-array JSON")
        return []
    except json.JSONDecodeError:
        pass

    # Strategy 2: fenced block somewhere inside surrounding prose
    block = re.search(r'```(?:json)?\s*(\[.*?\])\s*```', text, re.DOTALL)
    if block:
        try:
            events = _as_event_list(json.loads(block.group(1)))
            if events is not None:
                logger.debug("Parsed events from embedded code block")
                return events
        except json.JSONDecodeError as e:
            logger.debug(f"Failed to parse embedded code block: {e}")

    # Strategy 3: substring from the first '[' with truncation repair
    start_index = cleaned.find('[')
    if start_index != -1:
        try:
            events = _as_event_list(json.loads(fix_incomplete_json(cleaned[start_index:])))
            if events is not None:
                logger.debug("Parsed events after repairing truncated JSON")
                return events
        except json.JSONDecodeError as e:
            logger.debug(f"Failed to parse repaired JSON: {e}")

    logger.warning(f"Agent parsing failed; raw output (first 500 chars): {text[:500]}")
    return []
