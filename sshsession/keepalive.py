"""Periodic keepalive requests for interactive sessions."""

import logging
import threading

logger = logging.getLogger(__name__)


class KeepAlive:
    """Send a keepalive request on a fixed interval until stopped."""

    def __init__(self, channel, interval: float):
        """
        Args:
            channel: Object with a send_keepalive() method
            interval: Seconds between requests; <= 0 disables the ticker
        """
        self._channel = channel
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.sent = 0
        self.failures = 0

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    def start(self) -> None:
        if not self.enabled or self._thread:
            return
        self._thread = threading.Thread(target=self._tick_loop, name="keepalive", daemon=True)
        self._thread.start()
        logger.debug(f"Keepalive started (interval={self.interval}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _tick_loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self._channel.send_keepalive()
                self.sent += 1
            except Exception as e:
                # Best effort only; the session keeps running
                self.failures += 1
                logger.warning(f"Keepalive request failed: {e}")
