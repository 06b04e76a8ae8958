from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Delayed callbacks on an asyncio event loop.

    ``asyncio.TimerHandle.cancel`` is idempotent and a cancelled handle never
    runs, which is all the client relies on.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    def schedule(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)
