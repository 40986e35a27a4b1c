"""Device and clock protocols.

These protocols define the contract between tapbook's gesture driver and
the device backends that actually touch a simulator.  ``SimulatorDevice``
implements ``DeviceDriver`` with ``xcrun simctl`` and ``idb``; tests inject
in-memory fakes.  The clock is injectable so retry loops can be driven
deterministically.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from typing import Any, Protocol, runtime_checkable

from tapbook.engine.elements import UIElement


@dataclasses.dataclass
class DeviceResponse:
    """Success/data/error envelope returned by every device call."""

    success: bool
    data: Any = None
    error: str | None = None


@runtime_checkable
class DeviceDriver(Protocol):
    """Low-level device control.

    Coordinates are screen points.  Implementations report failures through
    ``DeviceResponse.success`` rather than raising.
    """

    async def snapshot(self) -> UIElement: ...

    async def tap(self, x: float, y: float) -> DeviceResponse: ...

    async def double_tap(self, x: float, y: float) -> DeviceResponse: ...

    async def long_press(self, x: float, y: float, duration: float) -> DeviceResponse: ...

    async def type_text(self, text: str) -> DeviceResponse: ...

    async def clear_text(self, length: int) -> DeviceResponse: ...

    async def swipe(
        self,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        duration: float,
    ) -> DeviceResponse: ...

    async def screenshot(self, path: str) -> DeviceResponse: ...


@runtime_checkable
class Clock(Protocol):
    """Time source for bounded retry loops."""

    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock implementation backed by ``time`` and ``asyncio``."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
