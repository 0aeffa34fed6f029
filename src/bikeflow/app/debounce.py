from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class LatestOnlyScheduler:
    """
    Debounce for filter requests: a new request cancels the pending one.

    Only the most recent argument reaches `callback`, `delay_ms` after the last request.
    Must be used from a running event loop.
    """

    def __init__(self, callback: Callable[[Any], None], *, delay_ms: int = 100) -> None:
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0: {delay_ms}")
        self._callback = callback
        self._delay_s = delay_ms / 1000.0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._superseded = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def superseded(self) -> int:
        return self._superseded

    def schedule(self, value: Any) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
            self._superseded += 1
        self._handle = loop.call_later(self._delay_s, self._fire, value)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, value: Any) -> None:
        self._handle = None
        logger.debug("Running debounced request %r", value)
        self._callback(value)
