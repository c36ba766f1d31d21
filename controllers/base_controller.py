from abc import ABC, abstractmethod
from typing import Any, Dict, List


class BaseController(ABC):
    """Base class for all controllers in the system."""

    @abstractmethod
    def process_input(self, input_data: Dict[str, Any]) -> List[str]:
        """
        Process one inbound message and deliver the replies.

        Args:
            input_data: Dictionary containing the message and its sender context

        Returns:
            List[str]: the replies that were produced, in order
        """
        pass
