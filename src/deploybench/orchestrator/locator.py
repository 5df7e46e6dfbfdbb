"""Pre-poll probes that resolve which platform build a trigger produced."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_fixed

from ..clock import SYSTEM_CLOCK, Clock
from ..config import LookupConfig
from ..providers.base import ByCommit, ById, ByTimeWindow, StatusProvider
from ..schemas import StatusSnapshot, TriggerResult

logger = logging.getLogger(__name__)


class BuildLocator:
    """Find the build for a trigger: explicit id, then commit, then time window.

    Platforms may take a few seconds to register a build after a push, so the
    commit lookup is retried a bounded number of times before falling back to
    scanning recent builds. ``ProviderError`` is not retried and propagates to
    the caller.
    """

    def __init__(self, config: LookupConfig, clock: Clock = SYSTEM_CLOCK) -> None:
        self._config = config
        self._clock = clock

    async def locate(self, provider: StatusProvider, trigger: TriggerResult) -> Optional[StatusSnapshot]:
        label = provider.platform.value
        if trigger.build_id:
            logger.info("[%s] Fetching build by id %s", label, trigger.build_id)
            return await provider.find_build(ById(trigger.build_id))

        if trigger.commit_hash:
            found = await self._probe_commit(provider, trigger.commit_hash)
            if found is not None:
                return found
            logger.info("[%s] Commit-based search failed, trying time-based search...", label)

        after = trigger.timestamp - timedelta(seconds=self._config.window_lead_seconds)
        return await provider.find_build(ByTimeWindow(after=after, max_results=self._config.window_scan))

    async def _probe_commit(self, provider: StatusProvider, commit_sha: str) -> Optional[StatusSnapshot]:
        label = provider.platform.value
        criteria = ByCommit(commit_sha=commit_sha, max_results=self._config.commit_scan)
        attempts = self._config.commit_attempts
        logger.info("[%s] Looking for build with commit %s", label, commit_sha)

        def log_retry(retry_state: RetryCallState) -> None:
            logger.info(
                "[%s] Build not found yet, waiting... (attempt %d/%d)",
                label,
                retry_state.attempt_number,
                attempts,
            )

        await self._clock.sleep(self._config.initial_delay_seconds)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts + 1),
            wait=wait_fixed(self._config.probe_interval_seconds),
            retry=retry_if_result(lambda found: found is None),
            retry_error_callback=lambda _state: None,
            before_sleep=log_retry,
            sleep=self._clock.sleep,
        )
        return await retrying(provider.find_build, criteria)


__all__ = ["BuildLocator"]
