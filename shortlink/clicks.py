"""Fire-and-forget click recording.

The redirect must not wait for click persistence. ``ClickRecorder.record``
schedules the append as an ``asyncio`` task and returns at once; the task
holds a strong reference in ``_pending`` until it finishes, and
``drain()`` lets shutdown (and tests) wait for everything in flight.

A failed append is logged and counted. It cannot corrupt the link record
because the append is an independent write, not a rewrite of the click log.
"""

import asyncio
import logging

from prometheus_client import Counter

from shortlink.errors import StorageError
from shortlink.store import ClickEvent, LinkStore

__all__ = ["ClickRecorder"]

CLICKS_RECORDED_TOTAL = Counter(
    "shortlink_clicks_recorded_total",
    "Click events persisted",
)
CLICKS_DROPPED_TOTAL = Counter(
    "shortlink_clicks_dropped_total",
    "Click events that could not be persisted",
    ["reason"],
)


class ClickRecorder:
    def __init__(self, store: LinkStore, logger: logging.Logger | logging.LoggerAdapter):
        self._store = store
        self._logger = logger
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(self, code: str, event: ClickEvent) -> asyncio.Task[bool]:
        task = asyncio.create_task(self._append(code, event), name=f"click:{code}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _append(self, code: str, event: ClickEvent) -> bool:
        try:
            stored = await self._store.append_click(code, event)
        except StorageError as exc:
            CLICKS_DROPPED_TOTAL.labels(reason="storage_error").inc()
            self._logger.error(f"Click persistence failed for {code}: {exc}")
            return False

        if not stored:
            CLICKS_DROPPED_TOTAL.labels(reason="link_gone").inc()
            self._logger.info(f"Click dropped for {code}: link no longer exists")
            return False

        CLICKS_RECORDED_TOTAL.inc()
        return True

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
