"""In-process publish/subscribe fan-out of accepted call sequences."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Iterator, List

from call_graph_live.analysis.models import CallSequence

LOGGER = logging.getLogger(__name__)

Listener = Callable[[CallSequence], object]


class Subscription:
    """Handle returned by :meth:`Broadcaster.subscribe`; closing it stops delivery."""

    def __init__(self, broadcaster: "Broadcaster", listener: Listener) -> None:
        self._broadcaster = broadcaster
        self.listener = listener
        self.closed = False

    def deliver(self, sequence: CallSequence) -> bool:
        self.listener(sequence)
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._broadcaster._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class StreamSubscription(Subscription):
    """Queue-backed subscription for consumers that pull, such as an event stream response."""

    def __init__(self, broadcaster: "Broadcaster", maxsize: int) -> None:
        self.queue: "queue.Queue[CallSequence]" = queue.Queue(maxsize=maxsize)
        super().__init__(broadcaster, self.queue.put_nowait)

    def deliver(self, sequence: CallSequence) -> bool:
        try:
            self.queue.put_nowait(sequence)
        except queue.Full:
            LOGGER.warning("Dropping stream subscriber: %d undelivered sequences", self.queue.qsize())
            self.close()
            return False
        return True

    def get(self, timeout: float | None = None) -> CallSequence | None:
        """Next published sequence, or ``None`` when ``timeout`` elapses first."""

        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def iter(self, timeout: float | None = None) -> Iterator[CallSequence | None]:
        """Yield sequences until closed; yields ``None`` on each idle ``timeout`` (for keep-alives)."""

        while not self.closed:
            yield self.get(timeout=timeout)


class Broadcaster:
    """Deliver every published sequence to all current subscribers, in publish order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, listener: Listener) -> Subscription:
        subscription = Subscription(self, listener)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def open_stream(self, maxsize: int = 256) -> StreamSubscription:
        subscription = StreamSubscription(self, maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        LOGGER.info("Stream subscriber connected (%d total)", self.subscriber_count)
        return subscription

    def publish(self, sequence: CallSequence) -> int:
        """
        Fan ``sequence`` out and return how many subscribers received it.

        A listener that raises is logged and skipped; the remaining subscribers still receive the
        sequence.
        """

        with self._publish_lock:
            with self._lock:
                targets = list(self._subscribers)
            delivered = 0
            for subscription in targets:
                if subscription.closed:
                    continue
                try:
                    accepted = subscription.deliver(sequence)
                except Exception:
                    LOGGER.exception("Subscriber %r failed on %s", subscription.listener, sequence.trace_id or "sequence")
                    continue
                if accepted:
                    delivered += 1
        LOGGER.debug("Published %s to %d subscribers", sequence.trace_id or "sequence", delivered)
        return delivered

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            try:
                self._subscribers.remove(subscription)
            except ValueError:
                return
        LOGGER.info("Subscriber disconnected (%d remaining)", self.subscriber_count)


__all__ = ["Broadcaster", "StreamSubscription", "Subscription"]
