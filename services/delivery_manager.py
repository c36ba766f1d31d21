import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

Transport = Callable[[str, str], None]


def console_transport(conversation_id: str, text: str) -> None:
    print(f"\n{text}\n")


class DeliveryManager:
    """Hands assistant replies to the chat transport, one message at a time."""

    def __init__(self, transport: Optional[Transport] = None):
        self.transport = transport or console_transport

    def send_message(self, conversation_id: str, text: str) -> bool:
        """
        Sends a single reply. Returns True if it was handed to the transport.
        """
        if not text:
            logger.debug("Skipping send: no reply generated for %s.", conversation_id)
            return False
        try:
            self.transport(conversation_id, text)
        except Exception as e:
            logger.error("Error delivering reply to %s: %s", conversation_id, e)
            return False
        return True

    def send_messages(self, conversation_id: str, messages: List[str]) -> int:
        return sum(1 for text in messages if self.send_message(conversation_id, text))
