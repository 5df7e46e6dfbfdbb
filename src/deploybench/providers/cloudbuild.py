"""Pantheon builds, observed through the Google Cloud Build REST API."""
from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
from google.auth.credentials import Credentials
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from ..exceptions import ConfigurationError, ProviderError
from ..schemas import BuildStatus, Platform, StatusSnapshot
from ..utils import parse_timestamp
from .base import HttpStatusProvider

CLOUD_BUILD_API = "https://cloudbuild.googleapis.com/v1"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def load_service_account(key_json: str) -> service_account.Credentials:
    """Build refreshable credentials from a service account key in JSON form."""

    try:
        info = json.loads(key_json)
        if not isinstance(info, dict):
            raise ValueError("expected a JSON object")
        return service_account.Credentials.from_service_account_info(info, scopes=[CLOUD_PLATFORM_SCOPE])
    except (ValueError, GoogleAuthError) as exc:
        raise ConfigurationError(f"GCP_SERVICE_ACCOUNT_JSON is not a usable service account key: {exc}") from exc


class CloudBuildProvider(HttpStatusProvider):
    """Status provider for Pantheon sites built on Cloud Build.

    Requests carry an OAuth access token minted from the service account
    credentials; the token is refreshed whenever it is missing or expired, so
    a poll may outlive any single token.
    """

    platform = Platform.PANTHEON
    STATUS_MAP = {
        "SUCCESS": BuildStatus.SUCCESS,
        "FAILURE": BuildStatus.FAILURE,
        "INTERNAL_ERROR": BuildStatus.FAILURE,
        "CANCELLED": BuildStatus.FAILURE,
        "EXPIRED": BuildStatus.FAILURE,
        "TIMEOUT": BuildStatus.TIMEOUT,
        "STATUS_UNKNOWN": BuildStatus.IN_PROGRESS,
        "PENDING": BuildStatus.IN_PROGRESS,
        "QUEUED": BuildStatus.IN_PROGRESS,
        "WORKING": BuildStatus.IN_PROGRESS,
    }

    def __init__(
        self,
        project_id: str,
        credentials: Credentials,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = CLOUD_BUILD_API,
    ) -> None:
        super().__init__(base_url=base_url, timeout=timeout, client=client)
        self.project_id = project_id
        self._credentials = credentials

    async def auth_headers(self) -> Dict[str, str]:
        if not self._credentials.valid:
            try:
                await asyncio.to_thread(self._credentials.refresh, Request())
            except GoogleAuthError as exc:
                raise ProviderError(self.platform.value, f"Could not obtain a Google access token: {exc}") from exc
        return {"Authorization": f"Bearer {self._credentials.token}"}

    async def get_status(self, build_reference: str) -> StatusSnapshot:
        build = await self.get_json(f"/projects/{self.project_id}/builds/{build_reference}")
        return self.parse_build(build)

    async def list_builds(self, max_results: int, commit_sha: Optional[str] = None) -> List[StatusSnapshot]:
        params: Dict[str, Any] = {"pageSize": max_results}
        if commit_sha:
            params["filter"] = f'source.repoSource.commitSha="{commit_sha}"'
        payload = await self.get_json(f"/projects/{self.project_id}/builds", params=params)
        return [self.parse_build(build) for build in payload.get("builds", [])[:max_results]]

    def parse_build(self, build: Dict[str, Any]) -> StatusSnapshot:
        native_status = build.get("status")
        provenance = build.get("sourceProvenance") or {}
        source_commit = (build.get("substitutions") or {}).get("COMMIT_SHA") or (
            provenance.get("resolvedRepoSource") or {}
        ).get("commitSha")
        return self.snapshot(
            native_status,
            build_reference=build.get("id"),
            start_time=parse_timestamp(build.get("startTime")),
            finish_time=parse_timestamp(build.get("finishTime")),
            error_message=build.get("statusDetail") if native_status in {"FAILURE", "INTERNAL_ERROR"} else None,
            metadata={
                "cloudBuildId": build.get("id"),
                "cloudBuildStatus": native_status,
                "logUrl": build.get("logUrl"),
                "projectId": self.project_id,
                "sourceCommit": source_commit,
                "images": build.get("images"),
                "timing": build.get("timing"),
            },
        )
