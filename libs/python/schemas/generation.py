"""Generative-text contracts shared by every text backend."""

from __future__ import annotations

from pydantic import BaseModel


class ConversationTurn(BaseModel):
    """One prior exchange; any role other than ``user`` is treated as the assistant."""

    role: str
    content: str

    @property
    def is_user(self) -> bool:
        return self.role == "user"


class GenerationResult(BaseModel):
    text: str
    tokens_used: int = 0
    backend: str | None = None
