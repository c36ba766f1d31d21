import logging
from typing import Any, Dict, List, Optional, assert_never

from conversation_manager.calendar_flow import CalendarFlowController
from conversation_manager.email_flow import EmailFlowController
from conversation_manager.flow_controller import FlowController, name_suffix
from conversation_manager.graph import create_turn_graph
from conversation_manager.types import (
    CalendarFlowState,
    ContextRetriever,
    ConversationState,
    EmailFlowState,
    IdleState,
    TurnState,
)
from repositories.history_repository import ConversationHistoryStore, history_repository
from repositories.state_repository import ConversationStateStore, state_repository
from services.delivery_manager import DeliveryManager
from services.trigger_guard import TriggerGuard
from .base_controller import BaseController
import config

logger = logging.getLogger(__name__)

RESET_COMMANDS = ("!reset", "!restart")

GENERIC_ERROR_MESSAGE = (
    "I encountered an error processing your request. "
    "Please try again or contact IT support if the issue persists."
)


def first_name_of(manager_name: Optional[str]) -> str:
    if not manager_name or not manager_name.strip():
        return "there"
    return manager_name.strip().split()[0]


class ChatController(BaseController):
    """
    Entry point for chat messages from the manager.

    Each turn holds the conversation's lock from start to finish: an active
    flow gets the message first, otherwise the Q&A graph answers it and may
    request that one flow starts.
    """

    def __init__(
        self,
        retriever: Optional[ContextRetriever] = None,
        guard: Optional[TriggerGuard] = None,
        state_store: Optional[ConversationStateStore] = None,
        history_store: Optional[ConversationHistoryStore] = None,
        calendar_flow: Optional[CalendarFlowController] = None,
        email_flow: Optional[EmailFlowController] = None,
        delivery_manager: Optional[DeliveryManager] = None,
    ):
        self.state_store = state_store or state_repository
        self.history_store = history_store or history_repository
        self.calendar_flow = calendar_flow or CalendarFlowController(self.state_store)
        self.email_flow = email_flow or EmailFlowController(self.state_store)
        self.delivery_manager = delivery_manager or DeliveryManager()
        self.graph = create_turn_graph(retriever=retriever, guard=guard, history_store=self.history_store)

    def process_input(self, input_data: Dict[str, Any]) -> List[str]:
        """
        Process a chat message.

        Args:
            input_data: conversation_id and text, plus optional manager_email,
                manager_name and timezone of the sending manager
        """
        conversation_id = input_data["conversation_id"]
        text = (input_data.get("text") or "").strip()
        if not text:
            return []

        with self.state_store.conversation_lock(conversation_id):
            try:
                replies = self._process_turn(conversation_id, text, input_data)
            except Exception as e:
                logger.exception("Error handling message for %s: %s", conversation_id, e)
                replies = [GENERIC_ERROR_MESSAGE]
            self.delivery_manager.send_messages(conversation_id, replies)
        return replies

    def _process_turn(self, conversation_id: str, text: str, input_data: Dict[str, Any]) -> List[str]:
        mailbox_id = input_data.get("manager_email") or config.MANAGER_EMAIL
        manager_name = input_data.get("manager_name") or config.MANAGER_NAME
        first_name = first_name_of(manager_name)

        if text.lower().startswith(RESET_COMMANDS):
            return [self.reset(conversation_id, first_name)]

        state = self.state_store.get(conversation_id)
        flow = self._flow_for(state)
        if flow is not None:
            replies = flow.handle(conversation_id, text, mailbox_id, first_name, manager_name)
            if replies is not None:
                return replies

        final_state = self.graph.invoke(TurnState(
            conversation_id=conversation_id,
            user_input=text,
            first_name=first_name,
            flow_state=state,
        ))
        # Convert AddableValuesDict back to TurnState if needed
        if not isinstance(final_state, TurnState):
            final_state = TurnState(**final_state)

        if final_state.completed_flow_consumed:
            self.state_store.clear(conversation_id)

        replies = [final_state.response_text] if final_state.response_text else []
        if final_state.email_trigger and final_state.email_template:
            template = final_state.email_template
            replies.extend(self.email_flow.start(conversation_id, template.subject, template.body))
        elif final_state.calendar_trigger:
            replies.extend(self.calendar_flow.start(
                conversation_id,
                mailbox_id,
                final_state.topic or config.DEFAULT_TOPIC,
                client_timezone=input_data.get("timezone"),
                first_name=first_name,
            ))
        return replies

    def _flow_for(self, state: ConversationState) -> Optional[FlowController]:
        if isinstance(state, IdleState):
            return None
        elif isinstance(state, EmailFlowState):
            return self.email_flow
        elif isinstance(state, CalendarFlowState):
            return self.calendar_flow
        else:
            assert_never(state)

    def reset(self, conversation_id: str, first_name: str = "there") -> str:
        """Forget the conversation's history and any flow in progress."""
        self.history_store.clear(conversation_id)
        self.state_store.clear(conversation_id)
        logger.info("Conversation %s reset", conversation_id)
        return (
            "🔄 **Conversation Reset**\n\n"
            f"Your conversation history has been cleared{name_suffix(first_name)}. "
            "Feel free to start with a new question!"
        )
