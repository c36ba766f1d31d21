class ConversationStateError(Exception):
    """Base class for conversation state failures."""


class InvalidStateError(ConversationStateError):
    """A flow-specific update was attempted against a mismatched or absent state."""

    def __init__(self, conversation_id: str, expected: str, actual: str):
        self.conversation_id = conversation_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Conversation {conversation_id} is in '{actual}' state, expected '{expected}'"
        )


class CollaboratorError(Exception):
    """An external collaborator (calendar, mail, model) failed or timed out."""
