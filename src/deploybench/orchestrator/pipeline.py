"""Fan-out orchestration of per-platform build monitoring."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..clock import SYSTEM_CLOCK, Clock
from ..config import LookupConfig, PollingConfig, Settings
from ..exceptions import ConfigurationError, DeployBenchError, ProviderError, StorageError
from ..persistence.store import RunRecorder
from ..providers import ProviderFactory, provider_factory
from ..schemas import BuildStatus, PlatformOutcome, RunReport, StatusSnapshot, TriggerResult, TriggerType
from ..triggers import triggered_only
from ..utils import seconds_between
from .locator import BuildLocator
from .poller import BoundedPoller

logger = logging.getLogger(__name__)


def check_credentials(triggers: Sequence[TriggerResult], settings: Settings) -> None:
    """Fail setup when no triggered platform can be monitored at all."""

    triggered = [trigger.platform for trigger in triggered_only(triggers)]
    usable = [platform for platform in triggered if settings.credentials_present(platform)]
    for platform in triggered:
        if platform not in usable:
            logger.warning("[%s] No API credentials (%s)", platform.value, ", ".join(settings.missing_credentials(platform)))
    if triggered and not usable:
        raise ConfigurationError("No credentials configured for any triggered platform")


class BenchmarkOrchestrator:
    """Runs one benchmark: create the run, monitor each platform, record results.

    Every triggered platform gets its own task and its own provider. Tasks
    never raise; each hands back a single ``PlatformOutcome``, so one platform
    timing out or failing cannot delay or abort the others.
    """

    def __init__(
        self,
        *,
        recorder: RunRecorder,
        provider_factory: ProviderFactory,
        polling: PollingConfig,
        lookup: LookupConfig,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self.recorder = recorder
        self.provider_factory = provider_factory
        self.polling = polling
        self.clock = clock
        self.poller = BoundedPoller(clock)
        self.locator = BuildLocator(lookup, clock)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        recorder: Optional[RunRecorder] = None,
        clock: Clock = SYSTEM_CLOCK,
    ) -> "BenchmarkOrchestrator":
        if recorder is None:
            if not settings.database_url:
                raise ConfigurationError("DATABASE_URL not set")
            recorder = RunRecorder.from_url(settings.database_url, echo=settings.database_echo)
        return cls(
            recorder=recorder,
            provider_factory=provider_factory(settings),
            polling=settings.polling,
            lookup=settings.lookup,
            clock=clock,
        )

    async def execute(
        self,
        triggers: Sequence[TriggerResult],
        trigger_type: TriggerType = TriggerType.SCHEDULED,
        notes: Optional[str] = None,
    ) -> RunReport:
        """Monitor every triggered platform and return once all are recorded."""

        started_at = self.clock.now()
        run_id = await asyncio.to_thread(self.recorder.create_run, trigger_type, notes)

        tasks: List[asyncio.Task[PlatformOutcome]] = []
        skipped: List[TriggerResult] = []
        for trigger in triggers:
            if not trigger.triggered:
                logger.info("[%s] Skipped (not triggered: %s)", trigger.platform.value, trigger.failure_reason)
                skipped.append(trigger)
                continue
            tasks.append(asyncio.create_task(self._monitor(run_id, trigger), name=f"monitor-{trigger.platform.value}"))

        outcomes = list(await asyncio.gather(*tasks))
        report = RunReport(
            run_id=run_id,
            trigger_type=trigger_type,
            started_at=started_at,
            completed_at=self.clock.now(),
            outcomes=outcomes,
            skipped=skipped,
        )
        if report.fully_recorded:
            logger.info("All builds monitored and recorded for run #%s", run_id)
        else:
            logger.error("Run #%s finished with unrecorded platform results", run_id)
        return report

    async def _monitor(self, run_id: int, trigger: TriggerResult) -> PlatformOutcome:
        label = trigger.platform.value
        try:
            build_record_id = await asyncio.to_thread(
                self.recorder.record_build_start,
                run_id,
                trigger.platform,
                trigger.timestamp,
                trigger.build_reference,
            )
        except StorageError as exc:
            logger.error("[%s] Could not record build start: %s", label, exc)
            return self._outcome(trigger, self._failure(f"Could not record build start: {exc}"), None)

        logger.info("[%s] Monitoring build #%s...", label, build_record_id)
        snapshot = await self._resolve(trigger)
        outcome = self._outcome(trigger, snapshot, build_record_id)
        # Logged before persisting so the result survives a storage failure.
        logger.info(
            "[%s] Result: %s (duration=%s, build=%s, error=%s)",
            label,
            outcome.status.value,
            outcome.duration_seconds,
            outcome.build_reference,
            outcome.error_message,
        )

        try:
            await asyncio.to_thread(
                self.recorder.record_build_completion,
                build_record_id,
                outcome.completion_time,
                outcome.status,
                outcome.error_message,
                outcome.metadata,
            )
        except StorageError as exc:
            logger.error("[%s] Failed to record completion of build #%s: %s", label, build_record_id, exc)
            return outcome
        outcome.recorded = True
        return outcome

    async def _resolve(self, trigger: TriggerResult) -> StatusSnapshot:
        """Locate the platform build and poll it to a terminal snapshot."""

        label = trigger.platform.value
        budget_started = self.clock.monotonic()
        try:
            provider = self.provider_factory(trigger.platform)
        except DeployBenchError as exc:
            logger.error("[%s] Cannot monitor build: %s", label, exc)
            return self._failure(str(exc))
        except Exception as exc:
            logger.exception("[%s] Could not create status provider", label)
            return self._failure(str(exc) or type(exc).__name__, {"error": repr(exc)})

        try:
            async with provider:
                located = await self.locator.locate(provider, trigger)
                if located is None:
                    logger.error("[%s] Could not find build", label)
                    return self._failure(f"Build not found in {label} history")

                reference = located.build_reference or trigger.build_reference
                logger.info("[%s] Found build: %s", label, reference)
                if located.completed and located.status.is_terminal:
                    if located.completion_time is None:
                        located = located.model_copy(update={"completion_time": self.clock.now()})
                    return located
                if reference is None:
                    return self._failure(f"{label} did not report a build reference to poll")

                remaining = self.polling.max_wait_seconds - (self.clock.monotonic() - budget_started)
                return await self.poller.run(provider, reference, remaining, self.polling.interval_seconds)
        except ProviderError as exc:
            logger.error("[%s] Error locating build: %s", label, exc.message)
            return self._failure(exc.message, {"error": exc.message, "status_code": exc.status_code})
        except Exception as exc:
            logger.exception("[%s] Unexpected error while monitoring build", label)
            return self._failure(str(exc) or type(exc).__name__, {"error": repr(exc)})

    def _failure(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> StatusSnapshot:
        return StatusSnapshot(
            status=BuildStatus.FAILURE,
            completed=True,
            completion_time=self.clock.now(),
            error_message=message,
            metadata=metadata if metadata is not None else {"error": message},
        )

    @staticmethod
    def _outcome(
        trigger: TriggerResult,
        snapshot: StatusSnapshot,
        build_record_id: Optional[int],
    ) -> PlatformOutcome:
        duration = seconds_between(trigger.timestamp, snapshot.completion_time)
        metadata = dict(snapshot.metadata)
        if snapshot.build_reference and snapshot.build_reference != trigger.build_reference:
            metadata.setdefault("resolvedBuildId", snapshot.build_reference)
        error_message = snapshot.error_message
        if error_message is None and snapshot.status is BuildStatus.FAILURE:
            error_message = "Build failed"
        return PlatformOutcome(
            platform=trigger.platform,
            status=snapshot.status,
            trigger_time=trigger.timestamp,
            build_record_id=build_record_id,
            completion_time=snapshot.completion_time,
            duration_seconds=max(duration, 0.0) if duration is not None else None,
            build_reference=snapshot.build_reference or trigger.build_reference,
            error_message=error_message,
            metadata=metadata,
        )


__all__ = ["BenchmarkOrchestrator", "check_credentials"]
