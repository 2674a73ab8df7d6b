"""Per-key deduplication of concurrent async work."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable

from posttopics.core.logging import get_logger

logger = get_logger(__name__)


class SingleFlight:
    """
    Runs at most one ``work()`` per key at a time.

    The first caller for a key starts the work as a task and registers it;
    callers arriving while it runs await the same task and observe the same
    value or exception. The registration is removed by a done-callback, so
    it is released on success, failure and cancellation alike.

    Registration happens without an ``await`` between the lookup and the
    insert, which makes check-and-insert atomic on the event loop.
    """

    def __init__(self):
        self._in_flight: Dict[Hashable, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def is_running(self, key: Hashable) -> bool:
        """Whether a run is currently in flight for ``key``."""
        return key in self._in_flight

    async def run_exclusive(self, key: Hashable, work: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run ``work`` for ``key`` or join the run already in flight.

        A cancelled caller stops waiting but does not cancel the shared run.

        Args:
            key: Deduplication key
            work: Zero-argument coroutine function

        Returns:
            Result of the single execution of ``work`` for this key
        """
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(work())
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        else:
            logger.debug(f"Joining in-flight run for {key}")

        return await asyncio.shield(task)

    def _release(self, key: Hashable, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the exception as retrieved when every waiter was cancelled
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Run for {key} finished with {type(task.exception()).__name__}")
