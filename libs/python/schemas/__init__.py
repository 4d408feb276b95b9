"""Shared schema exports."""

from .account import AccountStatus, BusinessInfo
from .generation import ConversationTurn, GenerationResult

__all__ = [
    "AccountStatus",
    "BusinessInfo",
    "ConversationTurn",
    "GenerationResult",
]
