"""Notifier wrappers that keep sink failures away from order transitions.

``GuardedNotifier`` is what the lifecycle engine always talks to: it hands
the message to the wrapped sink and logs any failure instead of raising.
``BackgroundNotifier`` moves delivery onto a worker thread so a slow sink
never delays the caller.
"""

import logging
import queue
import threading

from apps.orders.domain import NotificationMessage, NotifierPort

logger = logging.getLogger(__name__)


class GuardedNotifier(NotifierPort):
    """Best-effort wrapper: a failing sink is logged, never propagated."""

    def __init__(self, sink: NotifierPort):
        self.sink = sink

    def emit(self, message: NotificationMessage) -> None:
        try:
            self.sink.emit(message)
        except Exception:
            logger.exception(
                "notification emit failed",
                extra={"title": message.title, "target": message.target.value},
            )


class BackgroundNotifier(NotifierPort):
    """Queue messages and deliver them from a single daemon thread.

    Args:
        sink: The notifier that actually stores or sends messages.
        maxsize: Queue bound; when full, new messages are dropped and
            logged rather than blocking the producer.
    """

    def __init__(self, sink: NotifierPort, maxsize: int = 1000):
        self.sink = sink
        self._queue: "queue.Queue[NotificationMessage | None]" = queue.Queue(maxsize=maxsize)
        self._thread = threading.Thread(target=self._run, name="notifier", daemon=True)
        self._thread.start()

    def emit(self, message: NotificationMessage) -> None:
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            logger.warning("notification queue full, dropping", extra={"title": message.title})

    def flush(self) -> None:
        """Block until every queued message has been handed to the sink."""
        self._queue.join()

    def close(self) -> None:
        self._queue.put(None)
        self._thread.join()

    def _run(self) -> None:
        while True:
            message = self._queue.get()
            try:
                if message is None:
                    return
                self.sink.emit(message)
            except Exception:
                logger.exception("background notification failed", extra={"title": message.title})
            finally:
                self._queue.task_done()
