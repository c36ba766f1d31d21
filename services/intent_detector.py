import logging
import re
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Dict, List, Mapping, Optional, Tuple

from conversation_manager.types import Confidence, DetectionMethod, FlowType, IntentDetectionResult
import services.llm_service as llm_service
import config

logger = logging.getLogger(__name__)

# --- Phrase tables ---

# Direct recommendations or offers to act
TRIGGER_KEYWORDS: Dict[FlowType, List[str]] = {
    FlowType.CALENDAR: [
        "schedule a call", "schedule that call", "schedule the call",
        "call the employee", "call your employee", "call them", "phone call",
        "schedule a meeting", "set up a call", "arrange a call",
        "would you like me to schedule", "i can schedule",
        "check your calendar", "find available times",
        "you should call", "you need to call", "make a second call",
        "schedule that", "reach out to them", "reach out to your employee",
        "contact them", "contact your employee", "give them a call",
        "try calling", "next step is to call", "reach them",
        "get in touch with them", "recommend calling", "best to call",
        "one-on-one call", "speak with them", "reach out by phone",
        "contact them by phone", "have a conversation with", "discuss with them",
        "speak with the employee", "talk to them", "phone them", "make contact",
        "set up a meeting",
    ],
    FlowType.EMAIL: [
        "send an email", "send them an email", "email them", "email the employee",
        "draft an email", "draft a message", "follow up in writing",
        "send written notice", "written documentation", "document via email",
        "put it in writing", "send a written", "here's an email template",
        "want me to draft", "i can help you write", "would you like me to draft",
        "follow up with an email", "then email them", "send an email summary",
        "email after the call", "shoot them an email", "send them written",
        "email documenting", "email to confirm", "email outlining",
        "written warning via email", "email template", "follow up via email",
    ],
}

# Softer recommendations the heuristic tier is only moderately sure about
SOFT_PHRASES: Dict[FlowType, List[str]] = {
    FlowType.CALENDAR: [
        "connect with them by phone", "by phone", "over the phone",
        "touch base with them", "a quick call", "check in with them",
        "a conversation with them",
    ],
    FlowType.EMAIL: [
        "in writing", "written communication", "written follow-up",
        "written record", "follow-up note", "written summary",
    ],
}

# A sentence containing one of these reads as an instruction to the manager
DIRECTIVE_MARKERS = re.compile(
    r"\b(you should|you need to|you'll want to|i recommend|i'd recommend|recommend|"
    r"next step|would you like me to|want me to|shall i|let me|i can|please|make sure to)\b",
    re.IGNORECASE,
)

VETO_PATTERNS: Dict[str, List[re.Pattern]] = {
    "past action": [
        re.compile(r"\b(already|previously|just)\s+(called|emailed|phoned|contacted|reached|spoke|spoken|sent|talked)\b", re.I),
        re.compile(r"\byou(?:'ve| have)\s+(?:already\s+)?(called|emailed|phoned|contacted|sent|spoken|reached)\b", re.I),
        re.compile(r"\b(called|emailed|phoned) (them|the employee) (yesterday|earlier|last \w+)\b", re.I),
    ],
    "employee direction": [
        re.compile(r"\bwait (for|until) (them|the employee|he|she)\b", re.I),
        re.compile(r"\b(they|the employee|he|she) (calls?|emails?|contacts?|reaches out to) you\b", re.I),
        re.compile(r"\btheir (email )?(response|reply)\b", re.I),
        re.compile(r"\bemail (address )?is\b", re.I),
    ],
    "question about past action": [
        re.compile(r"^\W*(have|did|has|had)\s+(you|they)\b[^?]*\?", re.I),
    ],
    "negated or deferred": [
        re.compile(r"\b(don't|do not|never|avoid|shouldn't|should not)\b(\s+\w+){0,3}?\s+(call|email|contact|reach|schedule|send|phone)", re.I),
        re.compile(r"\b(wait|hold off)\b(\s+\w+){0,3}?\s+(before|on|until)\b", re.I),
    ],
}

# Background statements only veto when the sentence carries no directive
BACKGROUND_PATTERNS = [
    re.compile(r"\bpolicy (states|says|requires|allows|notes)\b", re.I),
    re.compile(r"\b(employees|managers) (may|can|typically|usually|are allowed to|are required to)\b", re.I),
    re.compile(r"\b(typically|usually|generally|normally|in general)\b", re.I),
    re.compile(r"\bone way to\b", re.I),
    re.compile(r"\bhere's how the process works\b", re.I),
]

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")

MODEL_PROMPTS = {
    FlowType.CALENDAR: """Analyze if this HR guidance recommends that the manager should call or contact the employee directly.

Consider as TRIGGERS:
- Direct recommendations: "call them", "reach out to them", "contact the employee"
- Indirect suggestions: "try contacting", "get in touch", "give them a call"
- Next steps: "the next step is to call", "you should call"
- Action guidance: "reach out by phone", "schedule a call"

DO NOT trigger for:
- Employee calling IN: "wait for them to call you back"
- Past tense: "you called them yesterday"
- Hypotheticals: "if you call them" (without recommendation)
- Negative: "don't call them yet"
- Questions about calling: "have you tried calling?"
""",
    FlowType.EMAIL: """Analyze if this HR guidance recommends that the manager should send an email or written documentation to the employee.

Consider as TRIGGERS:
- Direct recommendations: "send an email", "email them", "draft a message"
- Documentation: "follow up in writing", "send written notice", "document via email"
- Templates offered: "here's an email template", "want me to draft"
- Next steps: "then email them", "follow up with email", "send them an email"
- Written communication: "put it in writing", "written documentation"

DO NOT trigger for:
- Receiving emails: "wait for their email response"
- Email as contact: "their email is john@company.com"
- Past tense: "you already emailed them"
- Email mentions only: "email is one way to reach them"
- Questions: "have you sent an email?"
- Negatives: "don't email them yet"
""",
}

# Shared pool for bounded model calls
_model_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="intent-model")


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in SENTENCE_SPLIT.split(text or "") if s.strip()]


def find_keywords(text: str, phrases: List[str]) -> List[str]:
    lowered = (text or "").lower()
    return [phrase for phrase in phrases if phrase in lowered]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class IntentDetector(ABC):
    """Decides whether an assistant reply recommends one side-effecting action."""

    flow_type: FlowType

    @abstractmethod
    def detect(self, response_text: str) -> IntentDetectionResult:
        pass


class KeywordIntentDetector(IntentDetector):
    """
    Heuristic tier: phrase tables plus sentence-level vetoes.

    A directive phrase in a sentence no veto applies to is a high-confidence
    trigger. A soft phrase is a medium-confidence trigger. Phrases that only
    occur in vetoed sentences (past tense, employee-to-manager direction,
    questions, negation, background policy, an "if you ..." clause) give a
    medium-confidence no.
    """

    def __init__(self, flow_type: FlowType):
        self.flow_type = flow_type
        self.keywords = TRIGGER_KEYWORDS[flow_type]
        self.soft_phrases = SOFT_PHRASES[flow_type]

    def _veto_reason(self, sentence: str, matches: List[str]) -> Optional[str]:
        for reason, patterns in VETO_PATTERNS.items():
            if any(p.search(sentence) for p in patterns):
                return reason

        has_directive = DIRECTIVE_MARKERS.search(sentence) is not None
        if not has_directive and any(p.search(sentence) for p in BACKGROUND_PATTERNS):
            return "background information"

        # "If you call them, ..." only describes the action; "If X, call them" recommends it
        if re.match(r"^\W*if\b", sentence, re.I) and "," in sentence:
            condition = sentence.split(",", 1)[0].lower()
            if all(m in condition for m in matches) and not has_directive:
                return "hypothetical"
        return None

    def _scan(self, text: str, phrases: List[str]) -> Tuple[List[str], List[str]]:
        """Returns (matches in un-vetoed sentences, veto reasons for the rest)."""
        accepted, vetoes = [], []
        for sentence in split_sentences(text):
            matches = find_keywords(sentence, phrases)
            if not matches:
                continue
            reason = self._veto_reason(sentence, matches)
            if reason:
                vetoes.append(reason)
            else:
                accepted.extend(matches)
        return accepted, vetoes

    def detect(self, response_text: str) -> IntentDetectionResult:
        start = time.perf_counter()

        accepted, vetoes = self._scan(response_text, self.keywords)
        if accepted:
            return IntentDetectionResult(
                should_trigger=True,
                confidence=Confidence.HIGH,
                reasoning=f"Keyword matches: {', '.join(dict.fromkeys(accepted))}",
                method=DetectionMethod.HEURISTIC,
                latency_ms=_elapsed_ms(start),
            )

        soft_accepted, soft_vetoes = self._scan(response_text, self.soft_phrases)
        vetoes.extend(soft_vetoes)
        if soft_accepted:
            return IntentDetectionResult(
                should_trigger=True,
                confidence=Confidence.MEDIUM,
                reasoning=f"Soft recommendation: {', '.join(dict.fromkeys(soft_accepted))}",
                method=DetectionMethod.HEURISTIC,
                latency_ms=_elapsed_ms(start),
            )

        if vetoes:
            return IntentDetectionResult(
                should_trigger=False,
                confidence=Confidence.MEDIUM,
                reasoning=f"Matched phrases vetoed: {', '.join(dict.fromkeys(vetoes))}",
                method=DetectionMethod.HEURISTIC,
                latency_ms=_elapsed_ms(start),
            )

        return IntentDetectionResult(
            should_trigger=False,
            confidence=Confidence.LOW,
            reasoning="No keyword matches found",
            method=DetectionMethod.HEURISTIC,
            latency_ms=_elapsed_ms(start),
        )


class ModelIntentDetector(IntentDetector):
    """
    Semantic tier: structured classification by the chat model, bounded by a
    timeout. Any model error or timeout falls back to the heuristic tier with
    low confidence.
    """

    def __init__(
        self,
        flow_type: FlowType,
        classifier=None,
        timeout: float = config.INTENT_DETECTION_TIMEOUT_SECONDS,
        fallback: Optional[IntentDetector] = None,
    ):
        self.flow_type = flow_type
        self.timeout = timeout
        self.fallback = fallback or KeywordIntentDetector(flow_type)
        self.classifier = classifier or llm_service.classify_action_intent

    def detect(self, response_text: str) -> IntentDetectionResult:
        start = time.perf_counter()
        future = _model_executor.submit(self.classifier, MODEL_PROMPTS[self.flow_type], response_text)
        try:
            classification = future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            return self._fall_back(response_text, f"timed out after {self.timeout}s", start)
        except Exception as e:
            return self._fall_back(response_text, str(e), start)

        return IntentDetectionResult(
            should_trigger=classification.should_trigger,
            confidence=classification.confidence,
            reasoning=classification.reasoning,
            method=DetectionMethod.MODEL,
            latency_ms=_elapsed_ms(start),
        )

    def _fall_back(self, response_text: str, error: str, start: float) -> IntentDetectionResult:
        logger.warning("%s intent model detection failed: %s", self.flow_type.value.capitalize(), error)
        heuristic = self.fallback.detect(response_text)
        return heuristic.model_copy(update={
            "confidence": Confidence.LOW,
            "reasoning": f"Fallback to keyword detection due to LLM error: {error}",
            "latency_ms": _elapsed_ms(start),
        })


class TieredIntentDetector(IntentDetector):
    """Heuristic first; anything short of high confidence goes to the model tier."""

    def __init__(self, heuristic: IntentDetector, model: Optional[IntentDetector] = None):
        self.flow_type = heuristic.flow_type
        self.heuristic = heuristic
        self.model = model

    def detect(self, response_text: str) -> IntentDetectionResult:
        result = self.heuristic.detect(response_text)
        if result.confidence == Confidence.HIGH or self.model is None:
            return result
        logger.debug("Heuristic %s result was %s confidence, asking the model",
                     self.flow_type.value, result.confidence.value)
        return self.model.detect(response_text)


def build_intent_detectors(enabled: bool = config.INTENT_DETECTION_ENABLED) -> Dict[FlowType, IntentDetector]:
    """
    Detectors the trigger guard consults on top of its own checks.

    Empty unless model-assisted detection is enabled; the guard's keyword
    check is then the whole lexical decision.
    """
    if not enabled:
        return {}
    return {
        flow_type: TieredIntentDetector(KeywordIntentDetector(flow_type), ModelIntentDetector(flow_type))
        for flow_type in FlowType
    }


def detect_both(
    response_text: str,
    detectors: Optional[Mapping[FlowType, IntentDetector]] = None,
) -> Dict[FlowType, IntentDetectionResult]:
    """Run the calendar and email detectors over the same reply."""
    detectors = detectors or {flow_type: KeywordIntentDetector(flow_type) for flow_type in FlowType}
    return {flow_type: detector.detect(response_text) for flow_type, detector in detectors.items()}
