"""Model-name prefix routing across interchangeable text backends."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from schemas import ConversationTurn, GenerationResult

from ..metrics import GENERATIONS

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Raised when a text backend fails to produce a reply."""


class TextGenerator(Protocol):
    name: str

    def respond(
        self,
        model: str,
        system_prompt: str,
        message: str,
        history: Sequence[ConversationTurn] = (),
    ) -> GenerationResult: ...


class GeneratorRegistry:
    """Ordered ``prefix -> backend`` table with a catch-all default backend."""

    def __init__(self, default: TextGenerator) -> None:
        self._default = default
        self._routes: list[tuple[str, TextGenerator]] = []

    def register(self, prefix: str, generator: TextGenerator) -> None:
        """Route every model name starting with ``prefix`` to ``generator``."""
        self._routes.append((prefix, generator))

    def resolve(self, model: str) -> TextGenerator:
        for prefix, generator in self._routes:
            if model.startswith(prefix):
                return generator
        return self._default

    def respond(
        self,
        model: str,
        system_prompt: str,
        message: str,
        history: Sequence[ConversationTurn] = (),
    ) -> GenerationResult:
        generator = self.resolve(model)
        logger.info("generating reply with %s backend (model=%s)", generator.name, model)
        try:
            result = generator.respond(model, system_prompt, message, history)
        except GenerationError:
            GENERATIONS.labels(backend=generator.name, outcome="error").inc()
            raise
        GENERATIONS.labels(backend=generator.name, outcome="success").inc()
        return result.model_copy(update={"backend": generator.name})
