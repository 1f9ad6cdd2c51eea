"""One-shot and repeated signals used to observe a session."""

import queue
import threading
from collections.abc import Iterator

from sshsession.errors import SessionStateError


class OneShot:
    """A signal that fires at most once and can be waited on."""

    def __init__(self, name: str):
        self.name = name
        self._event = threading.Event()
        self._lock = threading.Lock()

    def fire(self) -> bool:
        """
        Fire the signal.

        Returns:
            True if this call fired it, False if it had already fired
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until fired. Returns False if the timeout expired first."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        state = "fired" if self.is_set() else "pending"
        return f"<OneShot {self.name} {state}>"


_CLOSED = object()


class ErrorChannel:
    """
    Stream of errors published by a session, closed exactly once.

    Consumers call get() or iterate; both end once the channel is closed
    and every published error has been delivered.
    """

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, error: BaseException) -> None:
        """Publish an error. Publishing after close is a programming error."""
        with self._lock:
            if self._closed:
                raise SessionStateError("publish on closed error channel")
            self._queue.put(error)

    def close(self) -> bool:
        """Close the channel. Returns False if it was already closed."""
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            self._queue.put(_CLOSED)
            return True

    def get(self, timeout: float | None = None) -> BaseException | None:
        """
        Receive the next error.

        Args:
            timeout: Seconds to wait, None to block until an error or close

        Returns:
            The next error, or None once the channel is closed and drained

        Raises:
            queue.Empty: If the timeout expired with nothing to deliver
        """
        if self._drained:
            return None
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self._drained = True
            # Leave the marker for any other consumer
            self._queue.put(_CLOSED)
            return None
        return item

    def __iter__(self) -> Iterator[BaseException]:
        while True:
            error = self.get()
            if error is None:
                return
            yield error


class Broadcaster:
    """Fan out repeated notifications to subscriber queues."""

    def __init__(self):
        self._subscribers: list[queue.Queue] = []
        self._lock = threading.RLock()
        self._closed = False

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue()
        with self._lock:
            if self._closed:
                q.put(None)
            else:
                self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    def notify(self, item: object) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for q in subscribers:
            q.put(item)

    def close(self) -> None:
        """Deliver the None sentinel to every subscriber and drop them."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers = self._subscribers
            self._subscribers = []
        for q in subscribers:
            q.put(None)
