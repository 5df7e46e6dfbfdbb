from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pytest

from deploybench.clock import Clock
from deploybench.config import LookupConfig, PollingConfig
from deploybench.orchestrator.pipeline import BenchmarkOrchestrator
from deploybench.persistence.store import RunRecorder
from deploybench.providers.base import StatusProvider
from deploybench.schemas import BuildStatus, Platform, StatusSnapshot, TriggerResult

START = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock(Clock):
    """Clock whose sleeps advance time instantly."""

    def __init__(self, start: datetime = START) -> None:
        self.start = start
        self.elapsed = 0.0
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)

    def monotonic(self) -> float:
        return self.elapsed

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.elapsed += seconds
        await asyncio.sleep(0)


Response = Union[StatusSnapshot, Exception]


class ScriptedProvider(StatusProvider):
    """Provider that replays canned responses; the last one repeats forever."""

    def __init__(
        self,
        platform: Platform,
        responses: Sequence[Response] = (),
        builds: Iterable[StatusSnapshot] = (),
    ) -> None:
        super().__init__()
        self.platform = platform
        self.responses: List[Response] = list(responses)
        self.builds = list(builds)
        self.calls = 0
        self.list_calls: List[tuple] = []
        self.closed = False

    async def get_status(self, build_reference: str) -> StatusSnapshot:
        self.calls += 1
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def list_builds(self, max_results: int, commit_sha: Optional[str] = None) -> List[StatusSnapshot]:
        self.list_calls.append((max_results, commit_sha))
        builds = self.builds[:max_results]
        if commit_sha:
            builds = [build for build in builds if build.metadata.get("sourceCommit") == commit_sha]
        return builds

    async def aclose(self) -> None:
        self.closed = True


def running(reference: str = "build-1", start: Optional[datetime] = None, commit: Optional[str] = None) -> StatusSnapshot:
    return StatusSnapshot(
        status=BuildStatus.IN_PROGRESS,
        completed=False,
        build_reference=reference,
        start_time=start,
        metadata={"sourceCommit": commit} if commit else {},
    )


def finished(
    status: BuildStatus = BuildStatus.SUCCESS,
    reference: str = "build-1",
    completion_time: Optional[datetime] = None,
    start: Optional[datetime] = None,
    commit: Optional[str] = None,
) -> StatusSnapshot:
    return StatusSnapshot(
        status=status,
        completed=True,
        completion_time=completion_time,
        build_reference=reference,
        start_time=start,
        metadata={"sourceCommit": commit} if commit else {},
    )


def trigger(
    platform: Platform,
    triggered: bool = True,
    build_id: Optional[str] = "build-1",
    commit: Optional[str] = None,
    timestamp: datetime = START,
    reason: Optional[str] = None,
) -> TriggerResult:
    return TriggerResult(
        platform=platform,
        triggered=triggered,
        timestamp=timestamp if triggered else None,
        build_id=build_id,
        commit_hash=commit,
        reason=reason,
    )


SETTINGS_ENV = (
    "DATABASE_URL",
    "DATABASE_ECHO",
    "GITHUB_EVENT_NAME",
    "RUN_NOTES",
    "GCP_PROJECT_ID",
    "GCP_SERVICE_ACCOUNT_JSON",
    "VERCEL_API_TOKEN",
    "VERCEL_PROJECT_ID",
    "VERCEL_TEAM_ID",
    "NETLIFY_API_TOKEN",
    "NETLIFY_SITE_ID",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'bench.sqlite'}"


@pytest.fixture()
def recorder(database_url: str) -> Iterable[RunRecorder]:
    store = RunRecorder.from_url(database_url)
    store.initialize()
    yield store
    store.dispose()


@pytest.fixture()
def make_orchestrator(recorder: RunRecorder, clock: FakeClock):
    def factory(
        providers: Dict[Platform, StatusProvider],
        max_wait: float = 60.0,
        interval: float = 10.0,
    ) -> BenchmarkOrchestrator:
        def provider_factory(platform: Platform) -> StatusProvider:
            return providers[platform]

        return BenchmarkOrchestrator(
            recorder=recorder,
            provider_factory=provider_factory,
            polling=PollingConfig(interval_seconds=interval, max_wait_seconds=max_wait),
            lookup=LookupConfig(initial_delay_seconds=1, commit_attempts=2, probe_interval_seconds=2),
            clock=clock,
        )

    return factory
