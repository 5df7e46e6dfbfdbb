"""Trigger-and-poll orchestration: locating, polling, and recording builds."""

from .locator import BuildLocator
from .pipeline import BenchmarkOrchestrator, check_credentials
from .poller import BoundedPoller, PollOutcome, PollState

__all__ = [
    "BenchmarkOrchestrator",
    "BoundedPoller",
    "BuildLocator",
    "PollOutcome",
    "PollState",
    "check_credentials",
]
