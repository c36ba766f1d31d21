import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from conversation_manager.types import ConversationTurn, MessageRole
import config

logger = logging.getLogger(__name__)


class ConversationHistoryStore:
    """Rolling window of the most recent turns for each conversation."""

    def __init__(self, max_length: int = config.MAX_HISTORY_LENGTH, clock: Callable[[], float] = time.monotonic):
        self.max_length = max_length
        self._clock = clock
        self._histories: Dict[str, List[ConversationTurn]] = {}
        self._last_activity: Dict[str, float] = {}
        self._lock = threading.Lock()

    def get_history(self, conversation_id: str) -> List[ConversationTurn]:
        """Return a copy of the conversation's turns, oldest first."""
        with self._lock:
            history = self._histories.get(conversation_id)
            if history is None:
                return []
            self._last_activity[conversation_id] = self._clock()
            return list(history)

    def append(self, conversation_id: str, role: MessageRole, content: str) -> List[ConversationTurn]:
        with self._lock:
            history = self._histories.setdefault(conversation_id, [])
            history.append(ConversationTurn(role=role, content=content))
            if len(history) > self.max_length:
                del history[:-self.max_length]
            self._last_activity[conversation_id] = self._clock()
            return list(history)

    def clear(self, conversation_id: str) -> None:
        with self._lock:
            self._histories.pop(conversation_id, None)
            self._last_activity.pop(conversation_id, None)

    def sweep_stale(self, timeout_seconds: float = config.STATE_TIMEOUT_SECONDS, now: Optional[float] = None) -> List[str]:
        now = self._clock() if now is None else now
        with self._lock:
            stale = [
                cid for cid, seen in self._last_activity.items()
                if now - seen > timeout_seconds
            ]
            for conversation_id in stale:
                self._histories.pop(conversation_id, None)
                self._last_activity.pop(conversation_id, None)
        if stale:
            logger.info("Evicted %d stale conversation histories", len(stale))
        return stale


# Create a singleton instance
history_repository = ConversationHistoryStore()
