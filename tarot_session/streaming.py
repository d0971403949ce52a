"""
streaming.py — Client-side typing effect for complete responses.

The text source returns whole responses; the presenter paces the reveal by
emitting progressively longer prefixes at a fixed interval.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

Sleep = Callable[[float], Awaitable[None]]


async def iter_prefixes(
    text: str,
    interval: float,
    sleep: Sleep = asyncio.sleep,
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[str]:
    """
    Yield text[:1], text[:2], ... text, pausing `interval` after each one.

    Stops early, without yielding further prefixes, once `cancel` is set.
    """
    for i in range(1, len(text) + 1):
        if cancel is not None and cancel.is_set():
            return
        yield text[:i]
        await sleep(interval)


class StreamingPresenter:
    """
    Drives one stream at a time to an observer.

    cancel() stops the stream in progress; present() then returns False.
    """

    def __init__(self, interval: float = 0.02, sleep: Sleep = asyncio.sleep) -> None:
        self.interval = interval
        self.sleep = sleep
        self._cancel: Optional[asyncio.Event] = None

    @property
    def active(self) -> bool:
        return self._cancel is not None

    async def present(self, text: str, on_prefix: Callable[[str], None]) -> bool:
        """Stream `text` into `on_prefix`; True when the full text was shown."""
        cancel = asyncio.Event()
        self._cancel = cancel
        try:
            shown = ""
            async for prefix in iter_prefixes(text, self.interval, self.sleep, cancel):
                shown = prefix
                on_prefix(prefix)
            return shown == text and not cancel.is_set()
        finally:
            if self._cancel is cancel:
                self._cancel = None

    def cancel(self) -> None:
        if self._cancel is not None:
            self._cancel.set()
