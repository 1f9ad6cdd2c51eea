"""Tests for the keepalive ticker."""

import time
from unittest.mock import MagicMock

from sshsession.keepalive import KeepAlive


class TestKeepAlive:
    """Tests for KeepAlive."""

    def test_disabled_for_zero_interval(self):
        channel = MagicMock()
        keepalive = KeepAlive(channel, 0)

        keepalive.start()
        time.sleep(0.1)
        keepalive.stop()

        assert not keepalive.enabled
        channel.send_keepalive.assert_not_called()

    def test_disabled_for_negative_interval(self):
        assert not KeepAlive(MagicMock(), -1).enabled

    def test_sends_on_interval(self):
        channel = MagicMock()
        keepalive = KeepAlive(channel, 0.05)

        keepalive.start()
        time.sleep(0.3)
        keepalive.stop()

        assert keepalive.sent >= 2
        assert channel.send_keepalive.call_count == keepalive.sent

    def test_failures_do_not_stop_ticker(self):
        channel = MagicMock()
        channel.send_keepalive.side_effect = OSError("transport is not active")
        keepalive = KeepAlive(channel, 0.05)

        keepalive.start()
        time.sleep(0.3)
        keepalive.stop()

        assert keepalive.failures >= 2
        assert keepalive.sent == 0

    def test_no_requests_after_stop(self):
        channel = MagicMock()
        keepalive = KeepAlive(channel, 0.05)
        keepalive.start()
        time.sleep(0.12)

        keepalive.stop()
        count = channel.send_keepalive.call_count
        time.sleep(0.15)

        assert channel.send_keepalive.call_count == count

    def test_stop_without_start(self):
        KeepAlive(MagicMock(), 10).stop()
