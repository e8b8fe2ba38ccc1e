# config.py

import os
import logging

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()

logger = logging.getLogger('config')


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        logger.warning(f"Invalid integer for {name}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        logger.warning(f"Invalid number for {name}, using {default}")
        return default


# Logging
DEBUG_EXTRACTOR = _env_bool('DEBUG_EXTRACTOR')
LOG_LEVEL = 'DEBUG' if DEBUG_EXTRACTOR else os.environ.get('LOG_LEVEL', 'INFO').upper()

# Text generation
OPENAI_API_KEY_SET = bool(os.environ.get('OPENAI_API_KEY'))
LLM_MODEL = os.environ.get('LLM_MODEL', 'gpt-4o-mini')
LLM_TEMPERATURE = _env_float('LLM_TEMPERATURE', 0.3)
LLM_MAX_TOKENS = _env_int('LLM_MAX_TOKENS', 4000)
LLM_TIMEOUT_SECONDS = _env_float('LLM_TIMEOUT_SECONDS', 120)
MAX_HTML_LENGTH = _env_int('MAX_HTML_LENGTH', 150000)

# Page fetching
RENDER_MAX_LOADS = _env_int('RENDER_MAX_LOADS', 3)
RENDER_WAIT_MS = _env_int('RENDER_WAIT_MS', 1200)
RENDER_TIMEOUT_MS = _env_int('RENDER_TIMEOUT_MS', 60000)
HTTP_TIMEOUT_SECONDS = _env_float('HTTP_TIMEOUT_SECONDS', 15)

# Normalization
DEFAULT_TIMEZONE = os.environ.get('DEFAULT_TIMEZONE', 'America/New_York')
TAG_KEYWORDS_FILE = os.environ.get('TAG_KEYWORDS_FILE')

# Events API
EVENTS_API_URL = os.environ.get('EVENTS_API_URL', 'http://localhost:3000/api')
EVENTS_API_USERNAME = os.environ.get('EVENTS_API_USERNAME')
EVENTS_API_PASSWORD = os.environ.get('EVENTS_API_PASSWORD')
REQUEST_DELAY = _env_float('REQUEST_DELAY', 1.0)

# Output
SAVE_FILES = _env_bool('SAVE_FILES')
