# llm_service.py
import logging
import threading
from typing import List, Optional

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import BaseModel, Field

from conversation_manager.errors import CollaboratorError
from conversation_manager.types import Confidence, ConversationTurn, MessageRole, SearchContext
import config

logger = logging.getLogger(__name__)

# System instructions for the LLM
SYSTEM_INSTRUCTIONS = f"""You are {config.ASSISTANT_NAME}, an HR guidance assistant for people managers.
Answer using the policy excerpts provided. Be practical, concise and supportive.
When a call with the employee is the right next step, say so plainly.
When written follow-up is appropriate, include an email the manager can send, with a
"**Subject:**" line and a body that starts "Hi [Employee Name]," and ends with a sign-off.
Ask one clarifying question when the situation is ambiguous."""

FALLBACK_RESPONSE = (
    "I'm sorry, I couldn't generate guidance for that right now. "
    "Please try again in a moment or contact HR directly."
)

_llm_model: Optional[ChatGoogleGenerativeAI] = None
_llm_lock = threading.Lock()


def get_llm_model() -> Optional[ChatGoogleGenerativeAI]:
    """Returns the shared Gemini chat model, created on first use. None without an API key."""
    global _llm_model
    if _llm_model is not None:
        return _llm_model
    if not config.GOOGLE_GEMINI_API_KEY:
        logger.warning("GOOGLE_GEMINI_API_KEY is not configured; LLM features are disabled.")
        return None
    with _llm_lock:
        if _llm_model is None:
            try:
                _llm_model = ChatGoogleGenerativeAI(
                    model=config.GEMINI_MODEL,
                    temperature=0.4,
                    top_p=1,
                    max_output_tokens=2048,
                    timeout=config.COLLABORATOR_TIMEOUT_SECONDS * 3,
                    google_api_key=config.GOOGLE_GEMINI_API_KEY,
                )
            except Exception as e:
                logger.error("Error initializing Gemini model: %s", e)
                return None
    return _llm_model


def _to_langchain_messages(history: Optional[List[ConversationTurn]]) -> list:
    messages = []
    for turn in history or []:
        if turn.role == MessageRole.USER:
            messages.append(HumanMessage(content=turn.content))
        elif turn.role == MessageRole.ASSISTANT:
            messages.append(AIMessage(content=turn.content))
    return messages


def _safe_generate_content(instructions: str, history: Optional[List[ConversationTurn]] = None) -> Optional[str]:
    """Helper function to call the LLM and handle common response patterns/errors."""
    llm_model = get_llm_model()
    if not llm_model:
        logger.warning("LLM model not initialized. Cannot generate content.")
        return None
    try:
        chat_history = [SystemMessage(content=SYSTEM_INSTRUCTIONS), SystemMessage(content=instructions)]
        chat_history.extend(_to_langchain_messages(history))

        # Ensure we have at least one human message
        if not any(isinstance(msg, HumanMessage) for msg in chat_history):
            chat_history.append(HumanMessage(content="Please provide a response."))

        response = llm_model.invoke(chat_history)
        if response and response.content:
            return response.content.strip()

        logger.error("LLM did not return a valid response: %r", response)
        return None
    except Exception as e:
        logger.error("Error during LLM content generation: %s", e)
        return None


def format_search_context(context: Optional[SearchContext]) -> str:
    if not context or not context.results:
        return "No policy excerpts were found for this question."
    sections = []
    for i, result in enumerate(context.results, 1):
        title = result.title or "Policy excerpt"
        sections.append(f"[{i}] {title}\n{result.content}")
    return "\n\n".join(sections)


def generate_hr_response(
    query: str,
    context: Optional[SearchContext],
    history: Optional[List[ConversationTurn]] = None,
    first_name: str = "there",
) -> str:
    """
    Writes the assistant's HR guidance for the manager's latest message.

    Args:
        query: the manager's message
        context: policy excerpts retrieved for the question (may be empty)
        history: prior turns, including any completed-flow context note
        first_name: how to address the manager
    """
    name_part = f" The manager's first name is {first_name}." if first_name and first_name != "there" else ""
    instructions = (
        f"POLICY EXCERPTS:\n{format_search_context(context)}\n\n"
        f"Respond to the manager's latest message.{name_part}\n"
        f"LATEST MESSAGE:\n{query}"
    )
    messages = list(history or [])
    if not messages or messages[-1].content != query:
        messages.append(ConversationTurn(role=MessageRole.USER, content=query))
    return _safe_generate_content(instructions, messages) or FALLBACK_RESPONSE


# Define the action intent classification model
class ActionIntentClassification(BaseModel):
    """Model for classifying whether HR guidance recommends an action."""
    should_trigger: bool = Field(
        description="True if the guidance recommends the manager take this action now"
    )
    confidence: Confidence = Field(
        description="How certain the classification is: low, medium or high"
    )
    reasoning: str = Field(
        description="One sentence explaining the decision"
    )


def classify_action_intent(prompt: str, response_text: str) -> ActionIntentClassification:
    """
    Classifies an assistant reply against an action-specific prompt using structured output.

    Raises:
        CollaboratorError: the model is unavailable or returned nothing usable.
    """
    llm_model = get_llm_model()
    if not llm_model:
        raise CollaboratorError("LLM model not initialized")

    system_message = SystemMessage(content="You are an intent detection system for HR guidance.")
    human_message = HumanMessage(content=f"""{prompt}
HR GUIDANCE:
\"\"\"{response_text}\"\"\"

Decide whether the guidance recommends this action.""")

    structured_llm = llm_model.with_structured_output(ActionIntentClassification)
    result = structured_llm.invoke([system_message, human_message])
    if result is None:
        raise CollaboratorError("LLM returned no classification")
    return result
