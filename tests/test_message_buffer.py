"""
Tests for Message Ordering in the MessageBuffer

Messages can reach a client in an order different from their server
timestamps. The buffer must always present them in rendering order.
"""

from roomsync import ChatMessage, MessageBuffer


def make_message(message_id, timestamp, text="", reactions=None):
    return ChatMessage(
        message_id=message_id,
        sender_uid="ann",
        sender_name="Ann",
        sender_avatar="A",
        text=text or message_id,
        timestamp=timestamp,
        reactions=reactions or {},
    )


class TestMessageBufferBasics:
    """Basic tests for MessageBuffer functionality."""

    def test_message_buffer_can_be_created(self):
        buffer = MessageBuffer()
        assert buffer.messages == []
        assert len(buffer) == 0

    def test_message_buffer_with_custom_size(self):
        buffer = MessageBuffer(max_buffer_size=50)
        assert buffer.max_buffer_size == 50

    def test_upsert_validates_input_type(self):
        buffer = MessageBuffer()
        assert buffer.upsert({"message_id": "m1"}) is False
        assert buffer.upsert(None) is False
        assert buffer.upsert(make_message("", 1)) is False
        assert len(buffer) == 0

    def test_contains(self):
        buffer = MessageBuffer()
        buffer.upsert(make_message("m1", 1))
        assert "m1" in buffer
        assert "m2" not in buffer


class TestMessageBufferOrdering:
    """Tests for rendering order."""

    def test_out_of_order_arrival(self):
        """World (ts 105) arrives before hello (ts 100)."""
        buffer = MessageBuffer()
        buffer.upsert(make_message("k2", 105, "world"))
        buffer.upsert(make_message("k1", 100, "hello"))
        assert [m.text for m in buffer.messages] == ["hello", "world"]

    def test_timestamp_ties_broken_by_key(self):
        buffer = MessageBuffer()
        buffer.upsert(make_message("b", 7))
        buffer.upsert(make_message("c", 7))
        buffer.upsert(make_message("a", 7))
        assert [m.message_id for m in buffer.messages] == ["a", "b", "c"]

    def test_replace_all_sorts_snapshot(self):
        buffer = MessageBuffer()
        buffer.upsert(make_message("old", 1))
        buffer.replace_all([make_message("z", 30), make_message("y", 10)])
        assert [m.message_id for m in buffer.messages] == ["y", "z"]
        assert "old" not in buffer

    def test_replace_all_reports_changes(self):
        buffer = MessageBuffer()
        snapshot = [make_message("a", 1), make_message("b", 2)]
        assert buffer.replace_all(snapshot) is True
        assert buffer.replace_all(snapshot) is False
        # b deleted, a gained a reaction
        assert buffer.replace_all([make_message("a", 1, reactions={"🔥": {"bo"}})]) is True
        assert [m.message_id for m in buffer.messages] == ["a"]
        assert buffer.messages[0].reactions == {"🔥": {"bo"}}


class TestMessageBufferUpdates:
    """Tests for redelivered and removed messages."""

    def test_identical_redelivery_is_ignored(self):
        buffer = MessageBuffer()
        assert buffer.upsert(make_message("m1", 1)) is True
        assert buffer.upsert(make_message("m1", 1)) is False
        assert len(buffer) == 1

    def test_changed_message_replaces_stored_copy(self):
        buffer = MessageBuffer()
        buffer.upsert(make_message("m1", 1))
        buffer.upsert(make_message("m2", 2))
        assert buffer.upsert(make_message("m1", 1, reactions={"🔥": {"bo"}})) is True
        assert len(buffer) == 2
        assert buffer.messages[0].reactions == {"🔥": {"bo"}}

    def test_remove(self):
        buffer = MessageBuffer()
        buffer.upsert(make_message("m1", 1))
        buffer.upsert(make_message("m2", 1))
        assert buffer.remove("m1") is True
        assert buffer.remove("m1") is False
        assert [m.message_id for m in buffer.messages] == ["m2"]

    def test_clear(self):
        buffer = MessageBuffer()
        buffer.upsert(make_message("m1", 1))
        buffer.clear()
        assert len(buffer) == 0
        assert "m1" not in buffer


class TestMessageBufferLimit:
    """Tests for the buffer size limit."""

    def test_oldest_messages_dropped(self):
        buffer = MessageBuffer(max_buffer_size=3)
        for i in range(5):
            buffer.upsert(make_message(f"m{i}", i))
        assert [m.message_id for m in buffer.messages] == ["m2", "m3", "m4"]
        assert "m0" not in buffer

    def test_no_limit_keeps_everything(self):
        buffer = MessageBuffer(max_buffer_size=None)
        buffer.replace_all(make_message(f"m{i:04d}", i) for i in range(1500))
        assert len(buffer) == 1500
        assert buffer.messages[0].message_id == "m0000"
