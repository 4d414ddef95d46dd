"""LLM-backed extraction of setpoint/output/mode changes from operator log text.

The diagnostic engine only depends on the call shape `await extract(tag, log_texts)`;
`OpenAIChangeExtractor` is the default implementation.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from .config import (
    CONTROL_LOOP_MAX_OUTPUT_TOKENS,
    CONTROL_LOOP_MODEL,
    CONTROL_LOOP_TEMPERATURE,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    sanitize_error_message,
)
from .prompts import build_control_loop_prompt, build_user_prompt
from .schemas import ExtractedChange

logger = logging.getLogger(__name__)

ChangeExtractor = Callable[[str, Sequence[str]], Awaitable[List[ExtractedChange]]]


class ExtractionError(Exception):
    """The extraction capability failed (transport, API or unparseable output)."""


def strip_code_fences(text: str) -> str:
    return (text or "").replace("```json", "").replace("```", "").strip()


def parse_extraction_output(text: str) -> List[ExtractedChange]:
    """
    Parse the model's reply into ExtractedChange records.

    Markdown fences are removed first. The payload must be a JSON array; entries that do not
    validate are dropped with a warning.

    Raises:
        ExtractionError: when the reply is not a JSON array.
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        return []
    try:
        payload: Any = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Extractor returned invalid JSON: {e}") from e
    if not isinstance(payload, list):
        raise ExtractionError(f"Extractor returned {type(payload).__name__}, expected a JSON array")

    changes: List[ExtractedChange] = []
    for idx, item in enumerate(payload):
        try:
            changes.append(ExtractedChange.model_validate(item))
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(f"Dropping extracted change #{idx}: {e}")
    return changes


def _make_client() -> AsyncOpenAI:
    if not OPENAI_API_KEY:
        raise ExtractionError("OPENAI_API_KEY not configured on server.")
    if OPENAI_BASE_URL:
        return AsyncOpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL)
    return AsyncOpenAI(api_key=OPENAI_API_KEY)


class OpenAIChangeExtractor:
    """Chat-completions extractor. The client is created on first use."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = CONTROL_LOOP_MODEL,
        temperature: float = CONTROL_LOOP_TEMPERATURE,
        max_tokens: int = CONTROL_LOOP_MAX_OUTPUT_TOKENS,
    ) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = _make_client()
        return self._client

    async def __call__(self, tag: str, log_texts: Sequence[str]) -> List[ExtractedChange]:
        logger.info(f"[ControlLoop] sending {len(log_texts)} logs to LLM for value extraction")
        messages = [
            {"role": "system", "content": build_control_loop_prompt(tag)},
            {"role": "user", "content": build_user_prompt(log_texts)},
        ]
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            raise ExtractionError(f"OpenAI request failed: {sanitize_error_message(e)}") from e

        content = ""
        if completion.choices:
            content = completion.choices[0].message.content or ""
        return parse_extraction_output(content)
