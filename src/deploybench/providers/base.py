"""Status provider contract and the HTTP plumbing shared by platform clients."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import httpx

from ..exceptions import ProviderError
from ..schemas import BuildStatus, Platform, StatusSnapshot
from ..utils import seconds_between

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ById:
    build_id: str


@dataclass(frozen=True)
class ByCommit:
    commit_sha: str
    max_results: int = 10


@dataclass(frozen=True)
class ByTimeWindow:
    after: datetime
    max_results: int = 20


LookupCriteria = Union[ById, ByCommit, ByTimeWindow]


def select_earliest_after(builds: Iterable[StatusSnapshot], after: datetime) -> Optional[StatusSnapshot]:
    """Pick the earliest build that started at or after *after*.

    ``sorted`` is stable, so builds with equal start times keep the order the
    platform listed them in. Builds without a start time cannot be placed in
    the window and are skipped.
    """

    candidates = [build for build in builds if build.start_time is not None and build.start_time >= after]
    if not candidates:
        return None
    return sorted(candidates, key=lambda build: build.start_time)[0]


class StatusProvider(ABC):
    """Reads one platform's build state and normalizes it.

    Subclasses declare ``STATUS_MAP``, the full translation table from the
    platform's native vocabulary. Values missing from the table normalize to
    ``in_progress`` so an unexpected state keeps the poller waiting instead of
    recording a terminal result the platform never reported.
    """

    platform: Platform
    STATUS_MAP: Mapping[str, BuildStatus] = {}

    def __init__(self) -> None:
        self._unknown_reported: set[str] = set()

    def normalize_status(self, native_status: Optional[str]) -> BuildStatus:
        if native_status is not None and native_status in self.STATUS_MAP:
            return self.STATUS_MAP[native_status]
        key = str(native_status)
        if key not in self._unknown_reported:
            self._unknown_reported.add(key)
            logger.warning("[%s] Unrecognised build status %r; treating as in_progress", self.platform.value, native_status)
        return BuildStatus.IN_PROGRESS

    def snapshot(
        self,
        native_status: Optional[str],
        *,
        build_reference: Optional[str],
        start_time: Optional[datetime] = None,
        finish_time: Optional[datetime] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StatusSnapshot:
        status = self.normalize_status(native_status)
        completed = status.is_terminal
        return StatusSnapshot(
            status=status,
            completed=completed,
            completion_time=finish_time if completed else None,
            duration_seconds=seconds_between(start_time, finish_time),
            build_reference=build_reference,
            start_time=start_time,
            error_message=error_message,
            metadata=metadata or {},
        )

    @abstractmethod
    async def get_status(self, build_reference: str) -> StatusSnapshot:
        """Return the current snapshot for *build_reference* or raise ``ProviderError``."""

    @abstractmethod
    async def list_builds(self, max_results: int, commit_sha: Optional[str] = None) -> List[StatusSnapshot]:
        """Return recent builds in platform-native order, optionally filtered by commit."""

    async def find_build(self, criteria: LookupCriteria) -> Optional[StatusSnapshot]:
        """Best-effort lookup by explicit id, commit, or time window."""

        if isinstance(criteria, ById):
            return await self.get_status(criteria.build_id)
        if isinstance(criteria, ByCommit):
            matches = await self.list_builds(criteria.max_results, commit_sha=criteria.commit_sha)
            if not matches:
                logger.info("[%s] No builds found for commit %s", self.platform.value, criteria.commit_sha)
                return None
            return matches[0]
        if isinstance(criteria, ByTimeWindow):
            recent = await self.list_builds(criteria.max_results)
            found = select_earliest_after(recent, criteria.after)
            if found is None:
                logger.info("[%s] No builds found after %s", self.platform.value, criteria.after.isoformat())
            return found
        raise TypeError(f"Unsupported lookup criteria: {criteria!r}")

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> "StatusProvider":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class HttpStatusProvider(StatusProvider):
    """Provider backed by a JSON REST API and a bearer token."""

    def __init__(
        self,
        *,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__()
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self._base_url}{path}"
        headers = {**await self.auth_headers(), "Accept": "application/json"}
        query = {key: value for key, value in (params or {}).items() if value is not None}
        try:
            response = await self._client.get(url, params=query, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(self.platform.value, f"Request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.platform.value, f"Network error: {exc}") from exc

        if not response.is_success:
            raise ProviderError(self.platform.value, _error_message(response), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.platform.value, f"Invalid JSON response: {exc}", status_code=response.status_code) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
    """Pull a readable message out of an error body, falling back to raw text."""

    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
        if data.get("message"):
            return str(data["message"])
    return response.text or response.reason_phrase


__all__ = [
    "ByCommit",
    "ById",
    "ByTimeWindow",
    "HttpStatusProvider",
    "LookupCriteria",
    "StatusProvider",
    "select_earliest_after",
]
