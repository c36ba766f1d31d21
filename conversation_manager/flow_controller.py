from abc import ABC, abstractmethod
from typing import List, Optional

from repositories.state_repository import ConversationStateStore, state_repository

CANCEL_WORDS = {"no", "n", "cancel", "stop", "nevermind", "never mind"}


def is_cancel(user_input: str) -> bool:
    return user_input.strip().lower() in CANCEL_WORDS


def name_suffix(first_name: Optional[str]) -> str:
    """', Dana' for a known first name, '' otherwise."""
    if not first_name or first_name == "there":
        return ""
    return f", {first_name}"


def anything_else(first_name: Optional[str]) -> str:
    return f"Is there anything else I can help you with{name_suffix(first_name)}?"


class FlowController(ABC):
    """Base class for the multi-turn action flows."""

    def __init__(self, store: Optional[ConversationStateStore] = None):
        self.store = store or state_repository

    @abstractmethod
    def handle(
        self,
        conversation_id: str,
        user_input: str,
        mailbox_id: str,
        first_name: Optional[str] = None,
        manager_name: Optional[str] = None,
    ) -> Optional[List[str]]:
        """
        Consume one manager message for an active flow.

        Returns the replies to send, or None when this flow is not collecting
        input and the message should go to the Q&A turn instead.
        """
        pass
