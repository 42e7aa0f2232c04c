import threading

import pytest

from common.messages import EmptySenderError, InboundMessage
from server.state import ConnectionRegistry, MessageLog, SessionDirectory, ServerContext
from server.config import PUBLIC_ROOM_ID, default_sessions


def inbound(sender="alice", to=PUBLIC_ROOM_ID, content="hi"):
    return InboundMessage(sender=sender, recipient=to, content=content)


class TestConnectionRegistry:
    def test_register_and_snapshot(self):
        reg = ConnectionRegistry()
        a, b = object(), object()
        reg.register("alice", a)
        reg.register("bob", b)
        snap = reg.snapshot()
        assert [(c.identity, c.handle) for c in snap] == [("alice", a), ("bob", b)]
        assert snap[0].avatar == "a"

    def test_register_twice_keeps_one_entry(self):
        reg = ConnectionRegistry()
        first, second = object(), object()
        reg.register("alice", first)
        reg.register("alice", second)
        assert len(reg) == 1
        assert reg.get("alice").handle is second

    def test_deregister(self):
        reg = ConnectionRegistry()
        reg.register("alice", object())
        reg.deregister("alice")
        assert "alice" not in reg
        reg.deregister("alice")  # unknown identity is a no-op
        assert len(reg) == 0

    def test_deregister_removes_whichever_connection_is_registered(self):
        reg = ConnectionRegistry()
        old, new = object(), object()
        reg.register("alice", old)
        reg.register("alice", new)
        reg.deregister("alice")
        assert "alice" not in reg

    def test_snapshot_is_a_copy(self):
        reg = ConnectionRegistry()
        reg.register("alice", object())
        snap = reg.snapshot()
        reg.register("bob", object())
        assert len(snap) == 1
        assert reg.identities() == ["alice", "bob"]


class TestMessageLog:
    def test_append_stamps_message(self):
        log = MessageLog()
        msg = log.append(inbound())
        assert msg.id == 1
        assert msg.timestamp
        assert msg.is_read is False
        assert msg.avatar == "a"
        assert (msg.sender, msg.recipient, msg.content) == ("alice", PUBLIC_ROOM_ID, "hi")

    def test_ids_are_sequential(self):
        log = MessageLog()
        ids = [log.append(inbound(content=str(i))).id for i in range(5)]
        assert ids == [1, 2, 3, 4, 5]

    def test_ids_unique_under_concurrent_appends(self):
        log = MessageLog()
        results = []
        results_lock = threading.Lock()

        def worker(n):
            got = [log.append(inbound(sender=f"user{n}")).id for _ in range(200)]
            with results_lock:
                results.extend(got)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == list(range(1, 1601))
        assert [m.id for m in log.history(PUBLIC_ROOM_ID)] == list(range(1, 1601))

    def test_empty_sender_rejected(self):
        log = MessageLog()
        with pytest.raises(EmptySenderError):
            log.append(inbound(sender=""))
        assert len(log) == 0
        assert log.append(inbound()).id == 1

    def test_history_filters_by_recipient_in_order(self):
        log = MessageLog()
        log.append(inbound(to="room-a", content="1"))
        log.append(inbound(to="room-b", content="2"))
        log.append(inbound(to="room-a", content="3"))
        assert [m.content for m in log.history("room-a")] == ["1", "3"]
        assert [m.content for m in log.history("room-b")] == ["2"]
        assert list(log.history("nobody")) == []

    def test_history_only_covers_log_at_call_time(self):
        log = MessageLog()
        log.append(inbound(content="before"))
        pending = log.history(PUBLIC_ROOM_ID)
        log.append(inbound(content="after"))
        assert [m.content for m in pending] == ["before"]


class TestSessionDirectory:
    def test_update_existing_session(self):
        d = SessionDirectory()
        for s in default_sessions():
            d.add(s)
        assert d.update_summary(PUBLIC_ROOM_ID, "hi", "2024-01-01T00:00:00.000Z") is True
        [s] = d.list()
        assert s.last_msg == "hi"
        assert s.last_time == "2024-01-01T00:00:00.000Z"
        assert s.unread == 0

    def test_unknown_session_is_not_created(self):
        d = SessionDirectory()
        for s in default_sessions():
            d.add(s)
        before = [s.to_dict() for s in d.list()]
        assert d.update_summary("nonexistent-id", "hi", "now") is False
        assert [s.to_dict() for s in d.list()] == before

    def test_list_returns_copies(self):
        d = SessionDirectory()
        for s in default_sessions():
            d.add(s)
        listed = d.list()
        listed[0].last_msg = "changed outside"
        assert d.list()[0].last_msg != "changed outside"


def test_context_shares_one_lock_for_log_and_directory():
    ctx = ServerContext.create(default_sessions())
    assert ctx.log.lock is ctx.directory.lock is ctx.chat_lock
    assert ctx.registry.lock is not ctx.chat_lock
    assert [s.id for s in ctx.directory.list()] == [PUBLIC_ROOM_ID]


def test_contexts_are_isolated():
    a = ServerContext.create(default_sessions())
    b = ServerContext.create(default_sessions())
    a.log.append(inbound())
    assert len(a.log) == 1
    assert len(b.log) == 0
