import re
from typing import List, Optional, Sequence

from pydantic import BaseModel

from conversation_manager.types import ConversationTurn, MessageRole

GREETINGS = [
    "hi", "hello", "hey", "hi there", "hello there", "hey there",
    "hi era", "hello era", "hey era", "good morning", "good afternoon",
    "good evening", "howdy", "greetings", "what's up", "whats up", "sup",
]

QUESTION_WORDS = [
    "what", "how", "when", "where", "why", "who", "which", "should",
    "can", "could", "would", "do", "does", "is", "are",
]

ENDINGS = [
    "thank", "thanks", "got it", "perfect", "sounds good", "looks good",
    "appreciate", "that helps", "that's helpful", "ok", "okay", "great",
    "awesome", "bye", "goodbye", "see you", "talk to you later", "all set",
    "i'm good", "im good",
]

# Short refusals only count as an ending after the assistant offered more help
REFUSALS = ["no", "nope", "no thanks", "nah"]
MORE_HELP_PROMPTS = ["anything else", "help you with", "let me know if"]

GREETING_QUESTIONS = [
    "What HR situation can I help",
    "How can I help you",
    "What can I help you with",
    "I'm here to help",
]

MAX_GREETING_LENGTH = 10
MAX_ENDING_LENGTH = 50


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}", text) is not None


def is_greeting(message: str) -> bool:
    """
    A greeting is an exact greeting phrase, or a very short message starting
    with one. Anything containing a question word is treated as a query.
    """
    text = re.sub(r"[!?.]", "", message.lower()).strip()
    words = set(re.findall(r"[a-z']+", text))

    if words & set(QUESTION_WORDS) and text not in GREETINGS:
        return False
    if text in GREETINGS:
        return True
    return len(text) <= MAX_GREETING_LENGTH and any(
        re.match(rf"{re.escape(g)}\b", text) for g in GREETINGS
    )


def is_conversational_ending(message: str, history: Optional[Sequence[ConversationTurn]] = None) -> bool:
    text = message.lower().strip()

    if text in REFUSALS and history:
        last_assistant = next(
            (turn.content.lower() for turn in reversed(history) if turn.role == MessageRole.ASSISTANT),
            "",
        )
        if any(prompt in last_assistant for prompt in MORE_HELP_PROMPTS):
            return True

    if len(message) >= MAX_ENDING_LENGTH:
        return False
    return any(_contains_phrase(text, ending) for ending in ENDINGS)


class QueryResolution(BaseModel):
    query: str
    reason: str  # new_query | answering_question | regular_followup
    is_follow_up: bool = False
    is_answering_question: bool = False


def resolve_query_for_search(current_query: str, history: List[ConversationTurn]) -> QueryResolution:
    """
    Pick the text to search the policy corpus with.

    history must already include the current user message. When the manager
    is answering the assistant's clarifying question, the first non-greeting
    user message is the real HR question and is searched instead.
    """
    if len(history) <= 1:
        return QueryResolution(query=current_query, reason="new_query")

    previous = history[-2]
    is_greeting_question = any(q in previous.content for q in GREETING_QUESTIONS)
    answering = (
        previous.role == MessageRole.ASSISTANT
        and "?" in previous.content
        and not is_greeting_question
    )

    if answering:
        original = next(
            (turn.content for turn in history
             if turn.role == MessageRole.USER and not is_greeting(turn.content)),
            current_query,
        )
        return QueryResolution(
            query=original,
            reason="answering_question",
            is_follow_up=True,
            is_answering_question=True,
        )

    return QueryResolution(query=current_query, reason="regular_followup", is_follow_up=True)


def fallback_query(has_results: bool, resolution: QueryResolution, history: List[ConversationTurn]) -> Optional[str]:
    """The first user question, when a plain follow-up found nothing."""
    if has_results or not resolution.is_follow_up or resolution.is_answering_question:
        return None
    user_messages = [turn.content for turn in history if turn.role == MessageRole.USER]
    if len(user_messages) > 1:
        return user_messages[0]
    return None
