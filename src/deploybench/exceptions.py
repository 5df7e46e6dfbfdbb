"""Error taxonomy shared by providers, the poller, and the recorder."""
from __future__ import annotations

from typing import Optional


class DeployBenchError(Exception):
    """Base class for all errors raised by deploy-bench."""


class ConfigurationError(DeployBenchError):
    """Setup is unusable (missing connection string, credentials, or inputs)."""


class MissingCredentialsError(ConfigurationError):
    """A platform has no credentials configured."""

    def __init__(self, platform: str, missing: list[str]) -> None:
        self.platform = platform
        self.missing = missing
        super().__init__(f"{platform}: missing {', '.join(missing)}")


class ProviderError(DeployBenchError):
    """A status check failed at the transport, auth, or platform level.

    This says nothing about the build itself; callers treat it as an unknown
    outcome rather than proof of a failed build.
    """

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None) -> None:
        self.platform = platform
        self.message = message
        self.status_code = status_code
        suffix = f" (status={status_code})" if status_code is not None else ""
        super().__init__(f"[{platform}] {message}{suffix}")


class TimeoutExceeded(DeployBenchError):
    """The poll budget ran out before the platform reported completion."""

    def __init__(self, elapsed: float, max_wait: float) -> None:
        self.elapsed = elapsed
        self.max_wait = max_wait
        super().__init__(f"Build did not complete within {max_wait:.0f}s (waited {elapsed:.0f}s)")


class StorageError(DeployBenchError):
    """The backing store is unreachable, misconfigured, or rejected a write."""


class BuildAlreadyResolvedError(StorageError):
    """A terminal build record was asked to move to a different terminal state."""


__all__ = [
    "BuildAlreadyResolvedError",
    "ConfigurationError",
    "DeployBenchError",
    "MissingCredentialsError",
    "ProviderError",
    "StorageError",
    "TimeoutExceeded",
]
