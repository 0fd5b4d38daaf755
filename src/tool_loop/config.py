# config.py
# Runtime settings, resolved once from the environment (.env supported).

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from tool_loop.loop import MAX_ITERATIONS
from tool_loop.provider import DEFAULT_BASE_URL, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

API_KEY_ENV = "OPENROUTER_API_KEY"
BASE_URL_ENV = "TOOL_LOOP_BASE_URL"
MODEL_ENV = "TOOL_LOOP_MODEL"
MAX_ITERATIONS_ENV = "TOOL_LOOP_MAX_ITERATIONS"
TIMEOUT_ENV = "TOOL_LOOP_REQUEST_TIMEOUT"
MAX_TOKENS_ENV = "TOOL_LOOP_MAX_TOKENS"
TEMPERATURE_ENV = "TOOL_LOOP_TEMPERATURE"

DEFAULT_MODEL = "anthropic/claude-3.5-haiku"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.7


def _env_number(name: str, default: float, cast: type, minimum: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; defaulting to %s.", name, raw, default)
        return default
    if value < minimum:
        logger.warning("%s=%r is below %s; defaulting to %s.", name, raw, minimum, default)
        return default
    return value


@dataclass(frozen=True)
class LoopSettings:
    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_iterations: int = MAX_ITERATIONS
    request_timeout: float = DEFAULT_TIMEOUT
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE

    @classmethod
    def from_env(cls) -> "LoopSettings":
        load_dotenv()
        return cls(
            api_key=os.getenv(API_KEY_ENV),
            base_url=os.getenv(BASE_URL_ENV) or DEFAULT_BASE_URL,
            model=os.getenv(MODEL_ENV) or DEFAULT_MODEL,
            max_iterations=int(_env_number(MAX_ITERATIONS_ENV, MAX_ITERATIONS, int, 1)),
            request_timeout=float(_env_number(TIMEOUT_ENV, DEFAULT_TIMEOUT, float, 1)),
            max_tokens=int(_env_number(MAX_TOKENS_ENV, DEFAULT_MAX_TOKENS, int, 1)),
            temperature=float(_env_number(TEMPERATURE_ENV, DEFAULT_TEMPERATURE, float, 0)),
        )
