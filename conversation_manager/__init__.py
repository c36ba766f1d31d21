from .types import (
    CalendarFlowState,
    ConversationState,
    ConversationTurn,
    EmailFlowState,
    FlowType,
    IdleState,
    MessageRole,
    TurnState,
)
from .errors import CollaboratorError, ConversationStateError, InvalidStateError

__all__ = [
    'CalendarFlowState',
    'ConversationState',
    'ConversationTurn',
    'EmailFlowState',
    'FlowType',
    'IdleState',
    'MessageRole',
    'TurnState',
    'CollaboratorError',
    'ConversationStateError',
    'InvalidStateError',
]
