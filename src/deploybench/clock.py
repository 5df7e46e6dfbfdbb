"""Time source used by the poller, the build locator and the orchestrator.

Tests swap in a clock whose sleeps advance time instantly.
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime

from .utils import utcnow


class Clock:
    """UTC wall clock, monotonic timer and asyncio sleep."""

    def now(self) -> datetime:
        return utcnow()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


SYSTEM_CLOCK = Clock()

__all__ = ["Clock", "SYSTEM_CLOCK"]
