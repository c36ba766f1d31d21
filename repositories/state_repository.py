import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Type, TypeVar

from pydantic import ValidationError

from conversation_manager.errors import InvalidStateError
from conversation_manager.types import (
    CalendarFlowState,
    ConversationState,
    EmailFlowState,
    EmailStep,
    FlowType,
    IdleState,
)
import config

logger = logging.getLogger(__name__)

FlowModel = TypeVar("FlowModel", EmailFlowState, CalendarFlowState)


class ConversationStateStore:
    """
    In-memory store of the active flow for each conversation.

    Every read and write refreshes the conversation's last-activity timestamp.
    Access is partitioned by conversation id: each id has its own re-entrant
    lock, so a turn in one conversation never waits on another.

    Example usage:
        with state_repository.conversation_lock(conversation_id):
            state = state_repository.get(conversation_id)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._states: Dict[str, ConversationState] = {}
        self._last_activity: Dict[str, float] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, conversation_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(conversation_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[conversation_id] = lock
            return lock

    @contextmanager
    def conversation_lock(self, conversation_id: str) -> Iterator[None]:
        """Hold the conversation's lock for the duration of a turn."""
        while True:
            lock = self._lock_for(conversation_id)
            lock.acquire()
            # The sweep may have dropped this entry while we waited; retry on the live one.
            with self._registry_lock:
                if self._locks.get(conversation_id) is lock:
                    break
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def get(self, conversation_id: str) -> ConversationState:
        """Return the stored state, or IdleState when the conversation has none."""
        with self.conversation_lock(conversation_id):
            state = self._states.get(conversation_id)
            if state is None:
                return IdleState()
            self._last_activity[conversation_id] = self._clock()
            return state

    def set(self, conversation_id: str, state: ConversationState) -> None:
        with self.conversation_lock(conversation_id):
            if isinstance(state, IdleState):
                self._states.pop(conversation_id, None)
                self._last_activity.pop(conversation_id, None)
                return
            self._states[conversation_id] = state
            self._last_activity[conversation_id] = self._clock()

    def clear(self, conversation_id: str) -> None:
        """Drop the conversation's state. Clearing an idle conversation is a no-op."""
        with self.conversation_lock(conversation_id):
            if self._states.pop(conversation_id, None) is not None:
                logger.debug("Cleared state for conversation %s", conversation_id)
            self._last_activity.pop(conversation_id, None)

    def _update(self, conversation_id: str, model: Type[FlowModel], expected: FlowType, updates: dict) -> FlowModel:
        with self.conversation_lock(conversation_id):
            current = self._states.get(conversation_id)
            if not isinstance(current, model):
                actual = current.type if current is not None else "idle"
                raise InvalidStateError(conversation_id, expected.value, actual)
            try:
                updated = model.model_validate({**current.model_dump(), **updates})
            except ValidationError as e:
                logger.warning("Rejected %s update for %s: %s", expected.value, conversation_id, e)
                raise
            self._states[conversation_id] = updated
            self._last_activity[conversation_id] = self._clock()
            return updated

    def update_calendar_state(self, conversation_id: str, **updates) -> CalendarFlowState:
        """
        Merge field updates into the stored calendar flow.

        Raises:
            InvalidStateError: the conversation is not in a calendar flow.
            pydantic.ValidationError: an update names an unknown field or has a bad value.
        """
        return self._update(conversation_id, CalendarFlowState, FlowType.CALENDAR, updates)

    def update_email_state(self, conversation_id: str, **updates) -> EmailFlowState:
        """Same contract as update_calendar_state, for the email flow."""
        return self._update(conversation_id, EmailFlowState, FlowType.EMAIL, updates)

    # --- Flow helpers ---

    def start_email_flow(self, conversation_id: str, subject: Optional[str], body: str) -> EmailFlowState:
        state = EmailFlowState(
            step=EmailStep.AWAITING_EMPLOYEE_NAME if subject else EmailStep.AWAITING_SUBJECT,
            subject=subject,
            body=body,
        )
        self.set(conversation_id, state)
        logger.info("Started email flow for conversation %s", conversation_id)
        return state

    def start_calendar_flow(
        self,
        conversation_id: str,
        topic: str = config.DEFAULT_TOPIC,
        manager_timezone: Optional[str] = None,
    ) -> CalendarFlowState:
        state = CalendarFlowState(topic=topic, manager_timezone=manager_timezone)
        self.set(conversation_id, state)
        logger.info("Started calendar flow for conversation %s", conversation_id)
        return state

    def get_flow_type(self, conversation_id: str) -> Optional[FlowType]:
        state = self.get(conversation_id)
        if isinstance(state, IdleState):
            return None
        return FlowType(state.type)

    def is_active(self, conversation_id: str) -> bool:
        """True while a flow is collecting input, i.e. present and not completed."""
        state = self.get(conversation_id)
        if isinstance(state, IdleState):
            return False
        return state.step != "completed"

    def record_variable(self, conversation_id: str, name: str, value: str) -> EmailFlowState:
        """Store a placeholder answer and advance to the next missing variable."""
        with self.conversation_lock(conversation_id):
            current = self.get(conversation_id)
            if not isinstance(current, EmailFlowState):
                raise InvalidStateError(conversation_id, FlowType.EMAIL.value, current.type)
            return self.update_email_state(
                conversation_id,
                variables={**current.variables, name: value},
                current_variable_index=current.current_variable_index + 1,
            )

    def next_missing_variable(self, conversation_id: str) -> Optional[str]:
        state = self.get(conversation_id)
        if not isinstance(state, EmailFlowState):
            return None
        if state.current_variable_index < len(state.missing_variables):
            return state.missing_variables[state.current_variable_index]
        return None

    # --- Eviction ---

    def sweep_stale(self, timeout_seconds: float = config.STATE_TIMEOUT_SECONDS, now: Optional[float] = None) -> List[str]:
        """
        Discard every conversation idle for longer than timeout_seconds.

        Conversations whose lock is held by an in-flight turn are skipped and
        picked up by a later sweep. Lock entries of conversations with no
        state left are dropped as well.

        Returns:
            List[str]: the conversation ids that were evicted.
        """
        now = self._clock() if now is None else now
        with self._registry_lock:
            candidates = [
                cid for cid, seen in list(self._last_activity.items())
                if now - seen > timeout_seconds
            ]
            # Locks left behind by cleared or never-started conversations
            orphans = [
                cid for cid in self._locks
                if cid not in self._states and cid not in self._last_activity
            ]
            locks = {cid: self._locks[cid] for cid in candidates + orphans if cid in self._locks}

        evicted = []
        for conversation_id, lock in locks.items():
            if not lock.acquire(blocking=False):
                logger.debug("Skipping sweep of busy conversation %s", conversation_id)
                continue
            try:
                # Re-check under the lock; a turn may have touched it since the scan.
                seen = self._last_activity.get(conversation_id)
                if seen is not None and now - seen > timeout_seconds:
                    self._states.pop(conversation_id, None)
                    self._last_activity.pop(conversation_id, None)
                    evicted.append(conversation_id)
                if conversation_id not in self._states and conversation_id not in self._last_activity:
                    with self._registry_lock:
                        if self._locks.get(conversation_id) is lock:
                            del self._locks[conversation_id]
            finally:
                lock.release()

        if evicted:
            logger.info("Evicted %d stale conversation state(s)", len(evicted))
        return evicted

    def active_conversation_count(self) -> int:
        with self._registry_lock:
            return len(self._states)


# Create a singleton instance
state_repository = ConversationStateStore()
