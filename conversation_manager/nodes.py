import logging
import random
from typing import Optional

from helpers.booking_helpers import extract_topic
from helpers.conversation_helpers import (
    fallback_query,
    is_conversational_ending,
    is_greeting,
    resolve_query_for_search,
)
from helpers.email_helpers import extract_email_template, fill_template
from repositories.history_repository import ConversationHistoryStore
from services.trigger_guard import TriggerGuard
import services.llm_service as llm_service

from .flow_controller import name_suffix
from .types import (
    CalendarFlowState,
    CalendarStep,
    ContextRetriever,
    ConversationTurn,
    EmailFlowState,
    EmailStep,
    FlowType,
    IdleState,
    MessageRole,
    TurnState,
)

logger = logging.getLogger(__name__)

GREETING_RESPONSES = [
    "Hi{name}! 👋 I'm ERA, your HR assistant. How can I help you today?",
    "Hello{name}! Ready to help with any HR questions you have.",
    "Hey{name}! What HR situation can I help you with?",
    "Hi{name}! I'm here to help with policies, procedures, and any HR guidance you need.",
]

ENDING_RESPONSES = [
    "You're welcome{suffix}! Feel free to reach out anytime you need HR guidance. 👍",
    "Happy to help{suffix}! Let me know if anything else comes up. 😊",
    "Glad I could assist! I'm here whenever you need me. ✨",
    "You got this{suffix}! Reach out if you need anything else. 💪",
]

RETRIEVAL_ERROR_MESSAGE = (
    "I'm having trouble accessing the policy database right now. Please try again in a moment."
)


def greeting_response(first_name: str) -> str:
    name = f" {first_name}" if first_name and first_name != "there" else ""
    return random.choice(GREETING_RESPONSES).format(name=name)


def ending_response(first_name: str) -> str:
    return random.choice(ENDING_RESPONSES).format(suffix=name_suffix(first_name))


def no_results_message(query: str) -> str:
    return (
        f'I couldn\'t find specific policy information related to "{query}". '
        "Please try rephrasing your question or contact HR directly for assistance."
    )


def new_turn(state: TurnState, history_store: ConversationHistoryStore) -> TurnState:
    """Records the manager's message and classifies greetings and endings."""
    logger.debug("---NODE: New Turn---")
    state.history = history_store.append(state.conversation_id, MessageRole.USER, state.user_input)

    # Only reset fields that should be determined in this run
    state.query_for_search = None
    state.search_context = None
    state.response_text = None
    state.email_trigger = False
    state.calendar_trigger = False
    state.email_template = None
    state.topic = None
    state.error_message = None

    # Endings win over greetings ("thanks, bye" is not a greeting)
    state.is_ending = is_conversational_ending(state.user_input, state.history[:-1])
    state.is_greeting = not state.is_ending and is_greeting(state.user_input)
    return state


def canned_reply_node(state: TurnState) -> TurnState:
    logger.debug("---NODE: Canned Reply---")
    if state.is_ending:
        state.response_text = ending_response(state.first_name)
    else:
        state.response_text = greeting_response(state.first_name)
    return state


def completed_flow_context(flow_state) -> Optional[str]:
    """A one-line note about a flow that finished on the previous turn."""
    if isinstance(flow_state, CalendarFlowState) and flow_state.step == CalendarStep.COMPLETED:
        phone = f", phone: {flow_state.employee_phone}" if flow_state.employee_phone else ""
        return (
            f'[Calendar Context: Just booked a call with {flow_state.employee_name} '
            f'about "{flow_state.topic}" at {flow_state.booked_time}{phone}]'
        )
    if isinstance(flow_state, EmailFlowState) and flow_state.step == EmailStep.COMPLETED:
        subject = fill_template(flow_state.subject or "", flow_state.variables)
        return (
            f'[Email Context: Just sent an email to {flow_state.recipient_name} '
            f'<{flow_state.recipient_email}> with subject "{subject}"]'
        )
    return None


def inject_completed_context(state: TurnState) -> TurnState:
    """
    Adds a note about a just-completed flow to the history the generator sees.
    The flow is marked consumed so the controller clears it and the note is
    injected only once.
    """
    logger.debug("---NODE: Inject Completed Context---")
    state.generation_history = list(state.history)
    state.completed_flow_consumed = False
    note = completed_flow_context(state.flow_state)
    if note:
        logger.info("Injecting completed flow context for %s: %s", state.conversation_id, note)
        state.generation_history.append(ConversationTurn(role=MessageRole.ASSISTANT, content=note))
        state.completed_flow_consumed = True
        state.flow_state = IdleState()
    return state


def retrieve_context_node(state: TurnState, retriever: Optional[ContextRetriever] = None) -> TurnState:
    logger.debug("---NODE: Retrieve Context---")
    resolution = resolve_query_for_search(state.user_input, state.history)
    state.query_for_search = resolution.query
    logger.info("Search query (%s): %s", resolution.reason, resolution.query)

    if retriever is None:
        logger.debug("No context retriever configured; generating without policy excerpts.")
        return state

    try:
        context = retriever.get_context(resolution.query)
        retry_query = fallback_query(bool(context.results), resolution, state.history)
        if retry_query:
            logger.info("Follow-up with no results. Searching with original question: %s", retry_query)
            state.query_for_search = retry_query
            context = retriever.get_context(retry_query)
    except Exception as e:
        logger.error("Error retrieving policy context: %s", e)
        state.error_message = f"Context retrieval failed: {e}"
        state.response_text = RETRIEVAL_ERROR_MESSAGE
        return state

    state.search_context = context
    if not context.results:
        logger.warning("No results found for query: %s", state.user_input)
        state.response_text = no_results_message(state.user_input)
    return state


def generate_response_node(state: TurnState) -> TurnState:
    logger.debug("---NODE: Generate Response---")
    state.response_text = llm_service.generate_hr_response(
        query=state.user_input,
        context=state.search_context,
        history=state.generation_history or state.history,
        first_name=state.first_name,
    )
    return state


def evaluate_triggers_node(state: TurnState, guard: TriggerGuard) -> TurnState:
    """Email is checked first; at most one flow is requested per turn."""
    logger.debug("---NODE: Evaluate Triggers---")
    response = state.response_text or ""

    if guard.should_trigger(FlowType.EMAIL, response, state.history, state.flow_state):
        template = extract_email_template(response)
        if template:
            state.email_trigger = True
            state.email_template = template
            return state
        logger.warning("Email recommended but no sendable template found in the reply.")

    if guard.should_trigger(FlowType.CALENDAR, response, state.history, state.flow_state):
        state.calendar_trigger = True
        state.topic = extract_topic(response, state.user_input)
    return state


def record_response_node(state: TurnState, history_store: ConversationHistoryStore) -> TurnState:
    logger.debug("---NODE: Record Response---")
    if state.response_text:
        state.history = history_store.append(state.conversation_id, MessageRole.ASSISTANT, state.response_text)
    return state
