"""In-process publish/subscribe bus for views mounted in the same tab."""

import logging
from collections import deque
from typing import Callable, Deque, List

from daygrid.sync.events import SyncEvent

logger = logging.getLogger(__name__)

Handler = Callable[[SyncEvent], None]


class EventBus:
    """Synchronous, FIFO message bus.

    `publish` delivers to every subscriber before returning. A message
    published by a handler while another message is being delivered is queued
    and delivered right after, so every subscriber sees messages in the order
    they were published.
    """

    def __init__(self):
        self._handlers: List[Handler] = []
        self._queue: Deque[SyncEvent] = deque()
        self._dispatching = False

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a function that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def publish(self, event: SyncEvent) -> None:
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                current = self._queue.popleft()
                logger.debug(f"Delivering {current.kind} from {current.origin}")
                for handler in list(self._handlers):
                    handler(current)
        finally:
            self._dispatching = False
            self._queue.clear()
