"""Bounded polling of a single platform build."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..clock import SYSTEM_CLOCK, Clock
from ..exceptions import ProviderError, TimeoutExceeded
from ..providers.base import StatusProvider
from ..schemas import BuildStatus, StatusSnapshot

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    """``POLLING`` exits exactly once, into one of the three terminal states."""

    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class PollOutcome:
    state: PollState
    snapshot: StatusSnapshot
    attempts: int
    elapsed_seconds: float


class BoundedPoller:
    """Checks a provider every ``interval`` seconds until completion or ``max_wait``.

    Provider errors end the poll immediately as ``failure``; they are not
    retried, which keeps the total wall-clock cost bounded even when a
    platform API is down.
    """

    def __init__(self, clock: Clock = SYSTEM_CLOCK) -> None:
        self._clock = clock

    async def run(
        self,
        provider: StatusProvider,
        build_reference: str,
        max_wait: float,
        interval: float,
    ) -> StatusSnapshot:
        outcome = await self.poll(provider, build_reference, max_wait, interval)
        return outcome.snapshot

    async def poll(
        self,
        provider: StatusProvider,
        build_reference: str,
        max_wait: float,
        interval: float,
    ) -> PollOutcome:
        label = provider.platform.value
        started = self._clock.monotonic()
        attempts = 0

        try:
            while True:
                elapsed = self._clock.monotonic() - started
                if elapsed >= max_wait:
                    raise TimeoutExceeded(elapsed, max_wait)

                attempts += 1
                snapshot = await provider.get_status(build_reference)
                if snapshot.completed and snapshot.status.is_terminal:
                    break

                logger.info("[%s] Still building... (%.0fs elapsed)", label, elapsed)
                await self._clock.sleep(interval)
        except TimeoutExceeded as exc:
            logger.warning("[%s] Timeout after %.0fs", label, exc.elapsed)
            return PollOutcome(
                state=PollState.TIMED_OUT,
                snapshot=StatusSnapshot(
                    status=BuildStatus.TIMEOUT,
                    completed=True,
                    completion_time=self._clock.now(),
                    build_reference=build_reference,
                    error_message=str(exc),
                    metadata={"timeout": True, "elapsed_seconds": exc.elapsed, "max_wait_seconds": max_wait},
                ),
                attempts=attempts,
                elapsed_seconds=exc.elapsed,
            )
        except ProviderError as exc:
            elapsed = self._clock.monotonic() - started
            logger.error("[%s] Error polling: %s", label, exc.message)
            return PollOutcome(
                state=PollState.FAILED,
                snapshot=StatusSnapshot(
                    status=BuildStatus.FAILURE,
                    completed=True,
                    completion_time=self._clock.now(),
                    build_reference=build_reference,
                    error_message=exc.message,
                    metadata={"error": exc.message, "status_code": exc.status_code},
                ),
                attempts=attempts,
                elapsed_seconds=elapsed,
            )

        elapsed = self._clock.monotonic() - started
        if snapshot.completion_time is None:
            snapshot = snapshot.model_copy(update={"completion_time": self._clock.now()})
        logger.info("[%s] Completed in %.2fs - %s", label, elapsed, snapshot.status.value)
        return PollOutcome(state=PollState.COMPLETED, snapshot=snapshot, attempts=attempts, elapsed_seconds=elapsed)


__all__ = ["BoundedPoller", "PollOutcome", "PollState"]
