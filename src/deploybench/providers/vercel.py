"""Vercel deployments via the Vercel REST API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ..schemas import BuildStatus, Platform, StatusSnapshot
from ..utils import from_epoch_millis
from .base import HttpStatusProvider

VERCEL_API = "https://api.vercel.com"


class VercelProvider(HttpStatusProvider):
    platform = Platform.VERCEL
    STATUS_MAP = {
        "READY": BuildStatus.SUCCESS,
        "ERROR": BuildStatus.FAILURE,
        "CANCELED": BuildStatus.FAILURE,
        "QUEUED": BuildStatus.IN_PROGRESS,
        "INITIALIZING": BuildStatus.IN_PROGRESS,
        "BUILDING": BuildStatus.IN_PROGRESS,
    }

    def __init__(
        self,
        token: str,
        *,
        project_id: Optional[str] = None,
        team_id: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = VERCEL_API,
    ) -> None:
        super().__init__(base_url=base_url, token=token, timeout=timeout, client=client)
        self.project_id = project_id
        self.team_id = team_id

    async def get_status(self, build_reference: str) -> StatusSnapshot:
        deployment = await self.get_json(f"/v13/deployments/{build_reference}", params={"teamId": self.team_id})
        return self.parse_deployment(deployment)

    async def list_builds(self, max_results: int, commit_sha: Optional[str] = None) -> List[StatusSnapshot]:
        payload = await self.get_json(
            "/v6/deployments",
            params={"limit": max_results, "projectId": self.project_id, "teamId": self.team_id},
        )
        deployments = payload.get("deployments", [])[:max_results]
        if commit_sha:
            deployments = [item for item in deployments if (item.get("meta") or {}).get("githubCommitSha") == commit_sha]
        return [self.parse_deployment(item) for item in deployments]

    def parse_deployment(self, deployment: Dict[str, Any]) -> StatusSnapshot:
        # The detail endpoint says ``readyState``/``createdAt``; the list endpoint ``state``/``created``.
        native_status = deployment.get("readyState") or deployment.get("state")
        meta = deployment.get("meta") or {}
        started = deployment.get("buildingAt") or deployment.get("createdAt") or deployment.get("created")
        return self.snapshot(
            native_status,
            build_reference=deployment.get("id") or deployment.get("uid"),
            start_time=from_epoch_millis(started),
            finish_time=from_epoch_millis(deployment.get("ready")),
            error_message=deployment.get("errorMessage"),
            metadata={
                "deploymentId": deployment.get("id") or deployment.get("uid"),
                "vercelState": native_status,
                "url": deployment.get("url"),
                "target": deployment.get("target"),
                "sourceCommit": meta.get("githubCommitSha"),
            },
        )
