"""Coalescing change notification for node store observers."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import Callable, Optional

from .blocks import Block

logger = getLogger(__name__)

Listener = Callable[[list[Block]], None]
BlockSource = Callable[[], list[Block]]


class ChangeNotifier:
    """Delivers the converted block list to listeners once per burst of changes.

    ``schedule`` never calls listeners itself. With a running event loop a
    single ``flush`` is queued with ``call_soon``; otherwise the host calls
    ``flush`` when it is idle.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._listeners: list[Listener] = []
        self._source: Optional[BlockSource] = None
        self._pending = False

    @property
    def pending(self) -> bool:
        return self._pending

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def schedule(self, source: BlockSource) -> None:
        """Mark the store dirty; the latest ``source`` is read at flush time."""
        self._source = source
        if self._pending:
            return
        self._pending = True

        loop = self._loop or _running_loop()
        if loop is not None:
            loop.call_soon(self.flush)

    def flush(self) -> bool:
        """Deliver a pending notification. Returns True if one was sent."""
        if not self._pending or self._source is None:
            return False
        self._pending = False

        blocks = self._source()
        for listener in list(self._listeners):
            try:
                listener(blocks)
            except Exception:
                logger.exception("Block list listener failed")
        return True


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
