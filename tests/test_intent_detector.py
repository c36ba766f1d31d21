import time
from unittest.mock import Mock

import pytest

from conversation_manager.errors import CollaboratorError
from conversation_manager.types import Confidence, DetectionMethod, FlowType
from services.intent_detector import (
    KeywordIntentDetector,
    ModelIntentDetector,
    TieredIntentDetector,
    build_intent_detectors,
    detect_both,
)
from services.llm_service import ActionIntentClassification


@pytest.fixture
def calendar_detector():
    return KeywordIntentDetector(FlowType.CALENDAR)


@pytest.fixture
def email_detector():
    return KeywordIntentDetector(FlowType.EMAIL)


# --- Heuristic tier ---

@pytest.mark.parametrize("phrase", [
    "schedule a call",
    "call them",
    "reach out to them",
    "contact your employee",
    "give them a call",
    "next step is to call",
])
def test_calendar_directives_trigger_with_high_confidence(calendar_detector, phrase):
    result = calendar_detector.detect(f"You should {phrase} to discuss the issue.")

    assert result.should_trigger is True
    assert result.confidence == Confidence.HIGH
    assert result.method == DetectionMethod.HEURISTIC


@pytest.mark.parametrize("response", [
    "Send them an email with the policy.",
    "Here's an email template you can use.",
    "Would you like me to draft a message to them?",
    "Follow up in writing so there is a record.",
])
def test_email_directives_trigger(email_detector, response):
    assert email_detector.detect(response).should_trigger is True


@pytest.mark.parametrize("response,reason", [
    ("You already called them, so there is no need to call them again today.", "past action"),
    ("Don't call them yet.", "negated or deferred"),
    ("Have you tried to call them this week?", "question about past action"),
    ("If you call them, document the conversation.", "hypothetical"),
])
def test_calendar_vetoes(calendar_detector, response, reason):
    result = calendar_detector.detect(response)

    assert result.should_trigger is False
    assert result.confidence == Confidence.MEDIUM
    assert reason in result.reasoning


@pytest.mark.parametrize("response", [
    "Don't send an email yet; wait until HR reviews the case.",
    "Employees may send an email to HR to request leave.",
    "Their email is john@company.com.",
    "Wait for their email response before doing anything else.",
])
def test_email_non_triggers(email_detector, response):
    assert email_detector.detect(response).should_trigger is False


def test_conditional_recommendation_triggers(calendar_detector):
    result = calendar_detector.detect("If they don't respond by Friday, call them.")

    assert result.should_trigger is True
    assert result.confidence == Confidence.HIGH


def test_soft_phrase_is_medium_confidence(calendar_detector):
    result = calendar_detector.detect("It may help to touch base with them this week.")

    assert result.should_trigger is True
    assert result.confidence == Confidence.MEDIUM


def test_no_match_is_low_confidence(calendar_detector):
    result = calendar_detector.detect("Document each absence in the attendance log.")

    assert result.should_trigger is False
    assert result.confidence == Confidence.LOW
    assert result.reasoning == "No keyword matches found"


def test_vetoed_sentence_does_not_hide_a_later_directive(calendar_detector):
    result = calendar_detector.detect("Don't call them during the weekend. You should call them on Monday.")
    assert result.should_trigger is True


def test_detect_both_handles_dual_method_reply():
    results = detect_both("Call them today, then send an email documenting the conversation.")

    assert results[FlowType.CALENDAR].should_trigger is True
    assert results[FlowType.EMAIL].should_trigger is True


def test_detect_both_single_method():
    results = detect_both("You should schedule a call with the employee this week.")

    assert results[FlowType.CALENDAR].should_trigger is True
    assert results[FlowType.EMAIL].should_trigger is False


# --- Semantic tier ---

def test_model_detector_returns_classification():
    classifier = Mock(return_value=ActionIntentClassification(
        should_trigger=True,
        confidence=Confidence.MEDIUM,
        reasoning="Indirect recommendation to reach out",
    ))
    detector = ModelIntentDetector(FlowType.CALENDAR, classifier=classifier)

    result = detector.detect("You might want to reach out by phone first.")

    assert result.should_trigger is True
    assert result.confidence == Confidence.MEDIUM
    assert result.method == DetectionMethod.MODEL
    prompt, text = classifier.call_args.args
    assert "call or contact the employee" in prompt
    assert text == "You might want to reach out by phone first."


def test_model_error_falls_back_to_keywords():
    classifier = Mock(side_effect=CollaboratorError("LLM model not initialized"))
    detector = ModelIntentDetector(FlowType.CALENDAR, classifier=classifier)

    result = detector.detect("Call them to discuss the absence.")

    assert result.should_trigger is True
    assert result.confidence == Confidence.LOW
    assert result.method == DetectionMethod.HEURISTIC
    assert "Fallback to keyword detection" in result.reasoning
    assert "LLM model not initialized" in result.reasoning


def test_model_timeout_falls_back_to_keywords():
    def slow_classifier(prompt, text):
        time.sleep(0.5)

    detector = ModelIntentDetector(FlowType.EMAIL, classifier=slow_classifier, timeout=0.05)

    result = detector.detect("Send them an email with the policy.")

    assert result.should_trigger is True
    assert result.confidence == Confidence.LOW
    assert "timed out" in result.reasoning


def test_tiered_skips_model_on_high_confidence():
    model = Mock()
    detector = TieredIntentDetector(KeywordIntentDetector(FlowType.CALENDAR), model)

    result = detector.detect("You should call them today.")

    assert result.confidence == Confidence.HIGH
    model.detect.assert_not_called()


def test_tiered_asks_model_when_unsure():
    model = Mock()
    model.detect.return_value = Mock(should_trigger=False)
    detector = TieredIntentDetector(KeywordIntentDetector(FlowType.CALENDAR), model)

    result = detector.detect("It may help to touch base with them this week.")

    model.detect.assert_called_once()
    assert result.should_trigger is False


def test_build_intent_detectors():
    assert build_intent_detectors(enabled=False) == {}

    detectors = build_intent_detectors(enabled=True)
    assert set(detectors) == set(FlowType)
    assert all(isinstance(d, TieredIntentDetector) for d in detectors.values())
