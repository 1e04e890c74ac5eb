"""Fire-and-forget scheduling for audit and notification writes.

Emitter writes run after the lifecycle update has committed and must never
change its outcome.  :meth:`Dispatcher.fire` wraps each write in its own
:class:`asyncio.Task`; a failure is logged at ``WARNING`` with the caller's
event name and then dropped.  :meth:`Dispatcher.drain` waits for everything
still in flight, which the HTTP app does on shutdown and the tests do
before asserting on side effects.

Typical usage::

    dispatcher = Dispatcher()
    dispatcher.fire(
        recorder.record(...),
        event=events.AUDIT_WRITE_FAILED,
        label=f"audit set_listing_status {listing.id}",
    )
    ...
    await dispatcher.drain()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

__all__ = ["Dispatcher"]

logger = logging.getLogger(__name__)


class Dispatcher:
    """Owns the set of in-flight emitter tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def fire(self, coro: Coroutine[Any, Any, Any], *, event: str, label: str) -> asyncio.Task[None]:
        """Schedule *coro* in the background.

        Args:
            coro: The emitter write.
            event: Event name logged if *coro* raises.
            label: Short description for the log line.
        """
        task = asyncio.create_task(self._guard(coro, event, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, Any], event: str, label: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Best-effort write failed (%s): %s", label, exc, extra={"event": event})

    async def drain(self) -> None:
        """Wait for every task scheduled so far (and any they schedule)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
