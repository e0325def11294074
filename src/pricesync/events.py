"""Progress event bus for sync runs.

Observers subscribe per store id; the orchestrator emits without waiting
for (or requiring) any subscriber.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from .models import SyncEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[SyncEvent], Any]


class SyncEventBus:
    """Fire-and-forget per-store pub/sub."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, store_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register `callback` for events of `store_id`.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.setdefault(store_id, []).append(callback)
        return lambda: self.unsubscribe(store_id, callback)

    def unsubscribe(self, store_id: str, callback: Subscriber) -> None:
        callbacks = self._subscribers.get(store_id)
        if not callbacks:
            return
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            del self._subscribers[store_id]

    def subscribe_queue(self, store_id: str, maxsize: int = 1000) -> asyncio.Queue:
        """Subscribe with a queue, e.g. to feed a push stream."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

        def _enqueue(event: SyncEvent) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Event queue full for store {store_id}, dropping {event.type}")

        self.subscribe(store_id, _enqueue)
        return queue

    def subscriber_count(self, store_id: str) -> int:
        return len(self._subscribers.get(store_id, []))

    def emit(
        self,
        store_id: str,
        type: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> SyncEvent:
        event = SyncEvent(store_id=store_id, type=type, message=message, data=data)
        for callback in list(self._subscribers.get(store_id, [])):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception as e:
                logger.warning(f"Event subscriber failed for store {store_id}: {e}")
        return event

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Async event subscriber failed: {task.exception()}")


__all__ = ["SyncEventBus", "Subscriber"]
