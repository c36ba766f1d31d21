import logging
import threading
from typing import Optional

from repositories.history_repository import ConversationHistoryStore, history_repository
from repositories.state_repository import ConversationStateStore, state_repository
import config

logger = logging.getLogger(__name__)


class StateSweeper:
    """
    Background eviction of idle conversations.

    Runs as a daemon thread that sweeps the flow state and history stores
    every interval. A conversation with a turn in flight is left for the
    next sweep.
    """

    def __init__(
        self,
        state_store: Optional[ConversationStateStore] = None,
        history_store: Optional[ConversationHistoryStore] = None,
        interval_seconds: float = config.SWEEP_INTERVAL_SECONDS,
        timeout_seconds: float = config.STATE_TIMEOUT_SECONDS,
    ):
        self.state_store = state_store or state_repository
        self.history_store = history_store or history_repository
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_once(self) -> int:
        """Run a single sweep. Returns the number of flow states evicted."""
        evicted = self.state_store.sweep_stale(self.timeout_seconds)
        self.history_store.sweep_stale(self.timeout_seconds)
        return len(evicted)

    def _run(self) -> None:
        logger.info("State sweeper started (every %ss, timeout %ss)", self.interval_seconds, self.timeout_seconds)
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.sweep_once()
            except Exception as e:
                logger.error("Error during state sweep: %s", e)
        logger.info("State sweeper stopped")

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="state-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


# Create a singleton instance
state_sweeper = StateSweeper()
