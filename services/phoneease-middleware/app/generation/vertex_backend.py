"""Gemini backend served through Vertex AI."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

import vertexai
from google.api_core import exceptions as google_exceptions
from vertexai.generative_models import Content, GenerativeModel, Part

from schemas import ConversationTurn, GenerationResult

from .registry import GenerationError

logger = logging.getLogger(__name__)

ModelFactory = Callable[[str, str], GenerativeModel]


def _default_model_factory(model: str, system_prompt: str) -> GenerativeModel:
    return GenerativeModel(model, system_instruction=system_prompt)


class VertexGenerator:
    name = "vertex"

    def __init__(self, model_factory: ModelFactory = _default_model_factory) -> None:
        self._model_factory = model_factory

    @classmethod
    def from_settings(cls, project: str, location: str) -> "VertexGenerator":
        vertexai.init(project=project or None, location=location)
        return cls()

    def respond(
        self,
        model: str,
        system_prompt: str,
        message: str,
        history: Sequence[ConversationTurn] = (),
    ) -> GenerationResult:
        contents = [
            Content(role="user" if turn.is_user else "model", parts=[Part.from_text(turn.content)])
            for turn in history
        ]
        contents.append(Content(role="user", parts=[Part.from_text(message)]))

        try:
            response = self._model_factory(model, system_prompt).generate_content(contents)
            text = response.text
        except (google_exceptions.GoogleAPIError, ValueError) as exc:
            # ValueError: the response was blocked or carried no text candidate
            logger.error("vertex call failed for %s: %s", model, exc)
            raise GenerationError(str(exc)) from exc

        usage = getattr(response, "usage_metadata", None)
        tokens = usage.total_token_count if usage is not None else 0
        logger.info("vertex %s replied (%d tokens)", model, tokens)
        return GenerationResult(text=text, tokens_used=tokens)
