"""Claude backend built on the Anthropic Messages API."""

from __future__ import annotations

import logging
import time
from typing import Sequence

import anthropic

from schemas import ConversationTurn, GenerationResult

from .registry import GenerationError

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 150
TEMPERATURE = 0.7


class AnthropicGenerator:
    name = "anthropic"

    def __init__(self, client: anthropic.Anthropic) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, api_key: str, *, timeout_seconds: float) -> "AnthropicGenerator":
        return cls(anthropic.Anthropic(api_key=api_key or None, timeout=timeout_seconds))

    def respond(
        self,
        model: str,
        system_prompt: str,
        message: str,
        history: Sequence[ConversationTurn] = (),
    ) -> GenerationResult:
        messages = [
            {"role": "user" if turn.is_user else "assistant", "content": turn.content}
            for turn in history
        ]
        messages.append({"role": "user", "content": message})

        started = time.monotonic()
        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=MAX_OUTPUT_TOKENS,
                temperature=TEMPERATURE,
                system=system_prompt,
                messages=messages,
            )
        except anthropic.APIError as exc:
            logger.error("anthropic call failed for %s: %s", model, exc)
            raise GenerationError(str(exc)) from exc

        text = "".join(block.text for block in response.content if block.type == "text")
        tokens = response.usage.input_tokens + response.usage.output_tokens
        logger.info(
            "anthropic %s replied in %.0fms (%d tokens)",
            model,
            (time.monotonic() - started) * 1000,
            tokens,
        )
        return GenerationResult(text=text, tokens_used=tokens)
