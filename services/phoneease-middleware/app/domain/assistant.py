"""Training and live-conversation replies for registered accounts."""

from __future__ import annotations

import logging
from typing import Sequence

from schemas import BusinessInfo, ConversationTurn, GenerationResult

from . import errors
from .account import AccountRecord
from .service import AccountStore
from .usage import check_training_quota
from ..generation.prompts import build_conversation_prompt, build_training_prompt
from ..generation.registry import GenerationError, GeneratorRegistry
from ..repository import StoreError

logger = logging.getLogger(__name__)


class AssistantService:
    """Resolve the caller's account, enforce quota and dispatch to a text backend."""

    def __init__(self, store: AccountStore, generators: GeneratorRegistry, *, default_model: str) -> None:
        self._store = store
        self._generators = generators
        self._default_model = default_model

    def train(
        self,
        account_token: str,
        message: str,
        business: BusinessInfo,
        model: str | None = None,
    ) -> GenerationResult:
        """Answer an owner's training question and consume one training interaction."""
        account = self._load(account_token)
        check_training_quota(account)

        result = self._generate(model or self._default_model, build_training_prompt(business), message)

        try:
            self._store.increment_counter(account.account_token, "training_used")
        except StoreError as exc:
            raise errors.PersistenceError(
                "Database error", details="Failed to record training usage.", cause=str(exc)
            ) from exc
        return result

    def chat(
        self,
        account_token: str,
        message: str,
        business: BusinessInfo,
        history: Sequence[ConversationTurn] = (),
        system_prompt: str | None = None,
        model: str | None = None,
    ) -> GenerationResult:
        """Reply to a caller on behalf of the business; does not consume quota."""
        self._load(account_token)
        prompt = system_prompt or build_conversation_prompt(business)
        return self._generate(model or self._default_model, prompt, message, history)

    def _load(self, account_token: str) -> AccountRecord:
        try:
            account = self._store.find_by_token(account_token)
        except StoreError as exc:
            raise errors.PersistenceError(
                "Database error", details="Failed to look up account.", cause=str(exc)
            ) from exc
        if account is None:
            raise errors.NotFoundError("Unknown site_token")
        return account

    def _generate(
        self,
        model: str,
        system_prompt: str,
        message: str,
        history: Sequence[ConversationTurn] = (),
    ) -> GenerationResult:
        try:
            return self._generators.respond(model, system_prompt, message, history)
        except GenerationError as exc:
            raise errors.ProviderUnavailableError(
                "AI service unavailable",
                details="Failed to generate a response. Please try again later.",
                cause=str(exc),
            ) from exc
