"""
Unit tests for the SQLite conversation store.
"""

import pytest

from apps.services.tool_server.conversation_store import ChatMessage, ConversationStore


@pytest.fixture
def store(tmp_path):
    store = ConversationStore(tmp_path / "nested" / "dir" / "chat.db")
    yield store
    store.close()


class TestConversationStore:

    def test_creates_parent_directory(self, tmp_path, store):
        assert (tmp_path / "nested" / "dir" / "chat.db").exists()

    def test_history_in_insertion_order(self, store):
        for i in range(5):
            role = "user" if i % 2 == 0 else "assistant"
            store.save_message("chat-1", ChatMessage(role=role, content=f"m{i}"))

        history = store.get_history("chat-1")

        assert [m.content for m in history] == ["m0", "m1", "m2", "m3", "m4"]
        assert history[1] == ChatMessage(role="assistant", content="m1")

    def test_chats_are_isolated(self, store):
        store.save_message("a", ChatMessage(role="user", content="for a"))
        store.save_message("b", ChatMessage(role="user", content="for b"))

        assert [m.content for m in store.get_history("a")] == ["for a"]
        assert [m.content for m in store.get_history("b")] == ["for b"]
        assert store.get_history("missing") == []

    def test_persists_across_reopen(self, tmp_path):
        path = tmp_path / "chat.db"
        first = ConversationStore(path)
        first.save_message("c", ChatMessage(role="user", content="hello"))
        first.close()

        second = ConversationStore(path)
        try:
            assert second.get_history("c") == [ChatMessage(role="user", content="hello")]
        finally:
            second.close()

    def test_close_is_idempotent(self, store):
        store.close()
        store.close()
