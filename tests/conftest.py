from datetime import datetime, timedelta
from typing import List, Tuple
from unittest.mock import Mock

import pytest
import pytz

from conversation_manager.types import (
    AvailableSlot,
    BookingResult,
    ConversationTurn,
    MessageRole,
    SendMailResult,
)
from repositories.history_repository import ConversationHistoryStore
from repositories.state_repository import ConversationStateStore


class FakeClock:
    """Monotonic clock the tests can move forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_history(*turns: Tuple[str, str]) -> List[ConversationTurn]:
    return [ConversationTurn(role=MessageRole(role), content=content) for role, content in turns]


def make_slots(count: int = 3) -> List[AvailableSlot]:
    tz = pytz.timezone("America/New_York")
    first = tz.localize(datetime(2025, 7, 1, 9, 0))
    slots = []
    for i in range(count):
        start = first + timedelta(minutes=30 * i)
        end = start + timedelta(minutes=30)
        slots.append(AvailableSlot(start=start, end=end, formatted=f"Tue, Jul 1, slot {i + 1}"))
    return slots


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ConversationStateStore(clock=clock)


@pytest.fixture
def history_store(clock):
    return ConversationHistoryStore(clock=clock)


@pytest.fixture
def calendar():
    calendar = Mock()
    calendar.resolve_manager_timezone.return_value = "America/New_York"
    calendar.get_available_slots.return_value = make_slots(5)
    calendar.book_event.return_value = BookingResult(success=True, event_id="evt-123")
    return calendar


@pytest.fixture
def mail():
    mail = Mock()
    mail.send_mail.return_value = SendMailResult(success=True)
    return mail
