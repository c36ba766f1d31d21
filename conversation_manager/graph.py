import logging
from functools import partial
from typing import Optional

from langgraph.graph import StateGraph, END

from repositories.history_repository import ConversationHistoryStore, history_repository
from services.trigger_guard import TriggerGuard
from services.intent_detector import build_intent_detectors

from .types import ContextRetriever, TurnState
from .nodes import (
    new_turn,
    canned_reply_node,
    inject_completed_context,
    retrieve_context_node,
    generate_response_node,
    evaluate_triggers_node,
    record_response_node,
)

logger = logging.getLogger(__name__)


def create_turn_graph(
    retriever: Optional[ContextRetriever] = None,
    guard: Optional[TriggerGuard] = None,
    history_store: Optional[ConversationHistoryStore] = None,
):
    """Creates and configures the Q&A turn workflow graph."""
    guard = guard or TriggerGuard(build_intent_detectors())
    history_store = history_store or history_repository

    workflow = StateGraph(TurnState)

    # Add nodes
    workflow.add_node("new_turn", partial(new_turn, history_store=history_store))
    workflow.add_node("canned_reply", canned_reply_node)
    workflow.add_node("inject_completed_context", inject_completed_context)
    workflow.add_node("retrieve_context", partial(retrieve_context_node, retriever=retriever))
    workflow.add_node("generate_response", generate_response_node)
    workflow.add_node("evaluate_triggers", partial(evaluate_triggers_node, guard=guard))
    workflow.add_node("record_response", partial(record_response_node, history_store=history_store))

    # Set entry point
    workflow.set_entry_point("new_turn")

    workflow.add_conditional_edges(
        "new_turn",
        decide_after_new_turn,
        {
            "canned_reply": "canned_reply",
            "inject_completed_context": "inject_completed_context",
        }
    )
    workflow.add_edge("inject_completed_context", "retrieve_context")
    workflow.add_conditional_edges(
        "retrieve_context",
        decide_after_retrieval,
        {
            "generate_response": "generate_response",
            "record_response": "record_response",
        }
    )

    # Add edges
    workflow.add_edge("canned_reply", "record_response")
    workflow.add_edge("generate_response", "evaluate_triggers")
    workflow.add_edge("evaluate_triggers", "record_response")
    workflow.add_edge("record_response", END)

    return workflow.compile()


def decide_after_new_turn(state: TurnState) -> str:
    if state.is_ending or state.is_greeting:
        logger.debug("Decision: %s, replying without search.", "ending" if state.is_ending else "greeting")
        return "canned_reply"
    return "inject_completed_context"


def decide_after_retrieval(state: TurnState) -> str:
    # A reply already set here is the no-results or retrieval-error message
    if state.response_text:
        logger.debug("Decision: no usable policy context, skipping generation.")
        return "record_response"
    return "generate_response"
