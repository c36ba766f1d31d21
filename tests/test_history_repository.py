from conversation_manager.types import MessageRole
from repositories.history_repository import ConversationHistoryStore
from tests.conftest import FakeClock


def test_history_is_capped_at_max_length(history_store):
    for i in range(12):
        history_store.append("conv-1", MessageRole.USER, f"message {i}")

    history = history_store.get_history("conv-1")
    assert len(history) == 10
    assert history[0].content == "message 2"
    assert history[-1].content == "message 11"


def test_get_history_returns_a_copy(history_store):
    history_store.append("conv-1", MessageRole.USER, "hello")

    history = history_store.get_history("conv-1")
    history.clear()

    assert len(history_store.get_history("conv-1")) == 1


def test_unknown_conversation_has_empty_history(history_store):
    assert history_store.get_history("missing") == []


def test_clear_drops_history(history_store):
    history_store.append("conv-1", MessageRole.USER, "hello")
    history_store.clear("conv-1")
    history_store.clear("conv-1")

    assert history_store.get_history("conv-1") == []


def test_sweep_evicts_idle_histories():
    clock = FakeClock()
    store = ConversationHistoryStore(max_length=4, clock=clock)
    store.append("stale", MessageRole.USER, "old question")
    clock.advance(40 * 60)
    store.append("fresh", MessageRole.USER, "new question")

    assert store.sweep_stale(timeout_seconds=30 * 60) == ["stale"]
    assert store.get_history("stale") == []
    assert len(store.get_history("fresh")) == 1
