"""Tests for session signals."""

import queue
import threading

import pytest

from sshsession.errors import SessionStateError
from sshsession.signals import Broadcaster, ErrorChannel, OneShot


class TestOneShot:
    """Tests for OneShot."""

    def test_fires_once(self):
        signal = OneShot("ready")
        assert not signal.is_set()
        assert signal.fire() is True
        assert signal.fire() is False
        assert signal.is_set()

    def test_wait_timeout(self):
        assert OneShot("done").wait(0.05) is False

    def test_wakes_waiters(self):
        signal = OneShot("done")
        threading.Timer(0.05, signal.fire).start()
        assert signal.wait(2) is True

    def test_repr(self):
        signal = OneShot("ready")
        assert "pending" in repr(signal)
        signal.fire()
        assert "fired" in repr(signal)


class TestErrorChannel:
    """Tests for ErrorChannel."""

    def test_delivers_in_order_then_ends(self):
        errors = ErrorChannel()
        first, second = RuntimeError("one"), RuntimeError("two")
        errors.publish(first)
        errors.publish(second)
        errors.close()

        assert list(errors) == [first, second]

    def test_get_after_close_returns_none(self):
        errors = ErrorChannel()
        errors.close()

        assert errors.get() is None
        assert errors.get(timeout=0.01) is None

    def test_get_times_out_while_open(self):
        with pytest.raises(queue.Empty):
            ErrorChannel().get(timeout=0.01)

    def test_close_once(self):
        errors = ErrorChannel()
        assert errors.close() is True
        assert errors.close() is False
        assert errors.closed

    def test_publish_after_close(self):
        errors = ErrorChannel()
        errors.close()

        with pytest.raises(SessionStateError):
            errors.publish(RuntimeError("late"))

    def test_blocked_consumer_sees_close(self):
        errors = ErrorChannel()
        received = []
        consumer = threading.Thread(target=lambda: received.extend(errors), daemon=True)
        consumer.start()

        errors.close()
        consumer.join(2)

        assert not consumer.is_alive()
        assert received == []


class TestBroadcaster:
    """Tests for Broadcaster."""

    def test_notifies_every_subscriber(self):
        broadcaster = Broadcaster()
        a = broadcaster.subscribe()
        b = broadcaster.subscribe()

        broadcaster.notify("winch")

        assert a.get_nowait() == "winch"
        assert b.get_nowait() == "winch"

    def test_unsubscribe(self):
        broadcaster = Broadcaster()
        q = broadcaster.subscribe()
        broadcaster.unsubscribe(q)

        broadcaster.notify("winch")

        assert q.empty()

    def test_close_sends_sentinel(self):
        broadcaster = Broadcaster()
        q = broadcaster.subscribe()

        broadcaster.close()
        broadcaster.close()

        assert q.get_nowait() is None
        assert q.empty()

    def test_subscribe_after_close(self):
        broadcaster = Broadcaster()
        broadcaster.close()

        assert broadcaster.subscribe().get_nowait() is None
