"""Propagate local terminal resizes to the remote PTY."""

import logging
import queue
import signal
import threading
from typing import Callable

from sshsession.signals import Broadcaster

logger = logging.getLogger(__name__)


class WindowSizeNotifier:
    """
    Broadcast SIGWINCH deliveries to subscribers.

    The handler can only be installed from the main thread. close() restores
    the previous handler when called on that thread; from any other thread it
    only ends the subscriptions, and a later close() on the main thread
    restores the handler.
    """

    def __init__(self):
        self._broadcaster = Broadcaster()
        self._previous = None
        self._installed = False
        self._owner: threading.Thread | None = None

    def install(self) -> None:
        """
        Install the SIGWINCH handler.

        Raises:
            ValueError: If called from a thread other than the main thread
        """
        self._previous = signal.signal(signal.SIGWINCH, self._handle)
        self._installed = True
        self._owner = threading.current_thread()

    def _handle(self, signum, frame) -> None:
        self._broadcaster.notify(signum)

    def subscribe(self) -> queue.Queue:
        return self._broadcaster.subscribe()

    def close(self) -> None:
        if self._installed and threading.current_thread() is self._owner:
            signal.signal(signal.SIGWINCH, self._previous or signal.SIG_DFL)
            self._installed = False
        self._broadcaster.close()


class ResizeWatcher:
    """
    Background watcher that forwards window size changes to a channel.

    Each notification triggers a size poll; a window-change request is sent
    only when width or height differ from the last size seen. Failures are
    logged and the watcher keeps running until its notification source
    delivers None.
    """

    def __init__(
        self,
        channel,
        size_fn: Callable[[], tuple[int, int]],
        notifications: queue.Queue,
    ):
        """
        Args:
            channel: Object with a window_change(rows, cols) method
            size_fn: Returns the current (width, height)
            notifications: Queue of resize notifications; None stops the watcher
        """
        self._channel = channel
        self._size_fn = size_fn
        self._notifications = notifications
        self._thread: threading.Thread | None = None
        self._width = 0
        self._height = 0

    def start(self) -> None:
        if self._thread:
            return
        try:
            self._width, self._height = self._size_fn()
        except Exception as e:
            logger.warning(f"Unable to read terminal size: {e}")
        self._thread = threading.Thread(target=self._watch_loop, name="resize-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Close the notification source and wait for the watcher to exit."""
        self._notifications.put(None)
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _watch_loop(self) -> None:
        while True:
            notification = self._notifications.get()
            if notification is None:
                return
            self.check()

    def check(self) -> bool:
        """
        Poll the size once and forward it if it changed.

        Returns:
            True if a window-change request was sent
        """
        try:
            width, height = self._size_fn()
        except Exception as e:
            logger.warning(f"Unable to read terminal size: {e}")
            return False

        if width == self._width and height == self._height:
            return False

        try:
            self._channel.window_change(height, width)
        except Exception as e:
            logger.warning(f"Unable to send window-change request: {e}")
            return False

        logger.debug(f"Window size changed to {width}x{height}")
        self._width, self._height = width, height
        return True
