"""Shared data models for the build benchmark orchestrator."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .utils import ensure_utc


class Platform(str, Enum):
    """Hosting platforms a benchmark run can target."""

    PANTHEON = "pantheon"
    VERCEL = "vercel"
    NETLIFY = "netlify"


class BuildStatus(str, Enum):
    """Normalized lifecycle states for a platform build."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    IN_PROGRESS = "in_progress"

    @property
    def is_terminal(self) -> bool:
        return self is not BuildStatus.IN_PROGRESS


class TriggerType(str, Enum):
    """What started the benchmark run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    EVENT = "event"

    @classmethod
    def from_event_name(cls, event_name: Optional[str]) -> "TriggerType":
        """Map a CI event name (e.g. ``GITHUB_EVENT_NAME``) onto a trigger type."""

        if not event_name:
            return cls.SCHEDULED
        normalized = event_name.strip().lower()
        if normalized in {"manual", "workflow_dispatch", "repository_dispatch"}:
            return cls.MANUAL
        if normalized in {"schedule", "scheduled", "cron"}:
            return cls.SCHEDULED
        return cls.EVENT


class TriggerResult(BaseModel):
    """One entry of the trigger step's output file."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    platform: Platform
    triggered: bool
    timestamp: Optional[datetime] = None
    commit_hash: Optional[str] = Field(default=None, alias="commitHash")
    build_id: Optional[str] = Field(default=None, alias="buildId")
    reason: Optional[str] = None
    error: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _triggered_needs_timestamp(self) -> "TriggerResult":
        if self.triggered and self.timestamp is None:
            raise ValueError(f"{self.platform.value}: triggered results must carry a timestamp")
        return self

    @property
    def build_reference(self) -> Optional[str]:
        """Reference recorded on the build row: explicit id first, then commit."""
        return self.build_id or self.commit_hash

    @property
    def failure_reason(self) -> str:
        return self.error or self.reason or "not triggered"


class StatusSnapshot(BaseModel):
    """Normalized view of a platform build at one point in time."""

    status: BuildStatus
    completed: bool
    completion_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    build_reference: Optional[str] = None
    start_time: Optional[datetime] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PlatformOutcome(BaseModel):
    """Terminal result of one platform's monitoring task."""

    platform: Platform
    status: BuildStatus
    trigger_time: datetime
    build_record_id: Optional[int] = None
    completion_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    build_reference: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    recorded: bool = False


class RunReport(BaseModel):
    """Everything the orchestrator learned during one run."""

    run_id: int
    trigger_type: TriggerType
    started_at: datetime
    completed_at: datetime
    outcomes: List[PlatformOutcome] = Field(default_factory=list)
    skipped: List[TriggerResult] = Field(default_factory=list)

    @property
    def platform_count(self) -> int:
        return len(self.outcomes)

    @property
    def fully_recorded(self) -> bool:
        """True when every triggered platform reached a terminal, persisted state."""
        return all(outcome.recorded and outcome.status.is_terminal for outcome in self.outcomes)


class BuildSummary(BaseModel):
    """Read model of a persisted platform build."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    run_id: int
    platform: Platform
    trigger_time: datetime
    completion_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    status: BuildStatus
    build_id: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="build_metadata")

    @field_validator("trigger_time", "completion_time")
    @classmethod
    def _times_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None


class RunSummary(BaseModel):
    """Read model of a persisted benchmark run and its builds."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    run_timestamp: datetime
    trigger_type: TriggerType
    notes: Optional[str] = None
    builds: List[BuildSummary] = Field(default_factory=list)

    @field_validator("run_timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


__all__ = [
    "BuildStatus",
    "BuildSummary",
    "Platform",
    "PlatformOutcome",
    "RunReport",
    "RunSummary",
    "StatusSnapshot",
    "TriggerResult",
    "TriggerType",
]
