import logging
import re
from typing import Mapping, Optional, Sequence, assert_never

from conversation_manager.types import (
    CalendarFlowState,
    ConversationState,
    ConversationTurn,
    EmailFlowState,
    FlowType,
    IdleState,
    MessageRole,
)
from services.intent_detector import TRIGGER_KEYWORDS, IntentDetector, find_keywords, split_sentences
import config

logger = logging.getLogger(__name__)

# The reply is still gathering facts from the manager
CLARIFICATION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bjust to make sure\b",
        r"\bjust to confirm\b",
        r"\bhave you\b",
        r"\bdid you\b",
        r"\bwere these\b",
        r"\bwas this\b",
        r"\bto confirm\b",
        r"\bcan you clarify\b",
        r"\bneed to know\b",
        r"\bcould you provide\b",
        r"\bwhat about\b",
    )
]

# An explicit offer to act outranks any clarifying wording around it
ACTION_OFFER_PHRASES = [
    "would you like me to schedule",
    "would you like me to draft",
    "would you like me to send",
    "would you like me to book",
    "would you like me to help draft",
    "i can schedule",
    "i can draft",
    "shall i schedule",
    "shall i book",
    "shall i draft",
    "shall i send",
    "should i schedule",
    "should i book",
    "should i draft",
    "should i send",
    "want me to schedule",
    "want me to book",
    "want me to draft",
    "want me to send",
]

OFFER_VERBS = r"(?:schedule|draft|book|send|set up|arrange)"

# "Shall I book it?", "Want me to draft that?" or the imperative "Schedule that call?"
ACTION_CONFIRMATION = re.compile(
    rf"^\W*(?:(?:shall|should|can) i\s+{OFFER_VERBS}|(?:do you )?want me to\s+{OFFER_VERBS}|{OFFER_VERBS})\b",
    re.IGNORECASE,
)
MAX_CONFIRMATION_QUESTION_LENGTH = 50
MIN_HISTORY_DEPTH = 2


def passes_state_guard(flow_type: FlowType, current_state: ConversationState) -> bool:
    """A flow never restarts itself; a different flow type may start."""
    if isinstance(current_state, IdleState):
        return True
    elif isinstance(current_state, EmailFlowState):
        return flow_type != FlowType.EMAIL
    elif isinstance(current_state, CalendarFlowState):
        return flow_type != FlowType.CALENDAR
    else:
        assert_never(current_state)


def _is_action_confirmation(question: str) -> bool:
    """A short closing question like "Shall I book it?" that offers the action."""
    if len(question) >= MAX_CONFIRMATION_QUESTION_LENGTH:
        return False
    if any(p.search(question) for p in CLARIFICATION_PATTERNS):
        return False
    return ACTION_CONFIRMATION.match(question) is not None


def is_clarifying_question(response_text: str) -> bool:
    """
    True when the reply asks the manager for more facts rather than offering
    to act. Requires a question mark and a clarification phrase, and is
    overridden by an action offer or a short trailing action-confirmation
    question.
    """
    if "?" not in response_text:
        return False
    if not any(p.search(response_text) for p in CLARIFICATION_PATTERNS):
        return False

    lowered = response_text.lower()
    if any(phrase in lowered for phrase in ACTION_OFFER_PHRASES):
        return False

    questions = [s for s in split_sentences(response_text) if s.endswith("?")]
    if questions and _is_action_confirmation(questions[-1]):
        return False
    return True


def passes_depth_guard(history: Sequence[ConversationTurn]) -> bool:
    return len(history) >= MIN_HISTORY_DEPTH


def context_gathered(history: Sequence[ConversationTurn], window: int = config.MAX_HISTORY_LENGTH) -> bool:
    """
    False while the latest assistant question is still the last turn, i.e.
    the manager has not answered it yet. Only the most recent window turns
    are scanned.
    """
    recent = list(history)[-window:]
    for offset, turn in enumerate(reversed(recent)):
        if turn.role == MessageRole.ASSISTANT and "?" in turn.content:
            return offset != 0
    return True


def has_trigger_keyword(flow_type: FlowType, response_text: str) -> bool:
    return bool(find_keywords(response_text, TRIGGER_KEYWORDS[flow_type]))


class TriggerGuard:
    """
    Decides whether a freshly generated reply may start a flow.

    Guards run in order and the first failure rejects: state, clarification,
    depth, context gathered, keyword, then the optional per-flow detector.
    A rejection is always a plain False; this class never raises.

    Example usage:
        guard = TriggerGuard()
        if guard.should_trigger(FlowType.EMAIL, reply, history, state_repository.get(cid)):
            ...
    """

    def __init__(
        self,
        detectors: Optional[Mapping[FlowType, IntentDetector]] = None,
        history_window: int = config.MAX_HISTORY_LENGTH,
    ):
        self.detectors = dict(detectors or {})
        self.history_window = history_window

    def should_trigger(
        self,
        flow_type: FlowType,
        response_text: Optional[str],
        history: Sequence[ConversationTurn],
        current_state: ConversationState,
    ) -> bool:
        try:
            return self._evaluate(flow_type, response_text or "", history, current_state)
        except Exception as e:
            logger.error("Trigger guard failed for %s, not triggering: %s", flow_type.value, e)
            return False

    def _evaluate(
        self,
        flow_type: FlowType,
        response_text: str,
        history: Sequence[ConversationTurn],
        current_state: ConversationState,
    ) -> bool:
        if not passes_state_guard(flow_type, current_state):
            logger.debug("%s trigger blocked: flow already active", flow_type.value)
            return False
        if is_clarifying_question(response_text):
            logger.debug("%s trigger blocked: reply is a clarifying question", flow_type.value)
            return False
        if not passes_depth_guard(history):
            logger.debug("%s trigger blocked: conversation too short (%d turns)", flow_type.value, len(history))
            return False
        if not context_gathered(history, self.history_window):
            logger.debug("%s trigger blocked: waiting on an answer to the last question", flow_type.value)
            return False
        if not has_trigger_keyword(flow_type, response_text):
            logger.debug("%s trigger blocked: no trigger keyword", flow_type.value)
            return False

        detector = self.detectors.get(flow_type)
        if detector is not None:
            result = detector.detect(response_text)
            logger.info("%s detector: trigger=%s confidence=%s (%s)", flow_type.value,
                        result.should_trigger, result.confidence.value, result.reasoning)
            if not result.should_trigger:
                return False

        logger.info("%s flow triggered", flow_type.value.capitalize())
        return True
