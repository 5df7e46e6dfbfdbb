"""Netlify deploys via the Netlify REST API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import ProviderError
from ..schemas import BuildStatus, Platform, StatusSnapshot
from ..utils import parse_timestamp
from .base import HttpStatusProvider

NETLIFY_API = "https://api.netlify.com/api/v1"


class NetlifyProvider(HttpStatusProvider):
    platform = Platform.NETLIFY
    STATUS_MAP = {
        "ready": BuildStatus.SUCCESS,
        "error": BuildStatus.FAILURE,
        "rejected": BuildStatus.FAILURE,
        "new": BuildStatus.IN_PROGRESS,
        "pending_review": BuildStatus.IN_PROGRESS,
        "accepted": BuildStatus.IN_PROGRESS,
        "enqueued": BuildStatus.IN_PROGRESS,
        "building": BuildStatus.IN_PROGRESS,
        "uploading": BuildStatus.IN_PROGRESS,
        "uploaded": BuildStatus.IN_PROGRESS,
        "preparing": BuildStatus.IN_PROGRESS,
        "prepared": BuildStatus.IN_PROGRESS,
        "processing": BuildStatus.IN_PROGRESS,
        "processed": BuildStatus.IN_PROGRESS,
        "retrying": BuildStatus.IN_PROGRESS,
    }

    def __init__(
        self,
        token: str,
        site_id: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = NETLIFY_API,
    ) -> None:
        super().__init__(base_url=base_url, token=token, timeout=timeout, client=client)
        self.site_id = site_id

    async def get_status(self, build_reference: str) -> StatusSnapshot:
        deploy = await self.get_json(f"/deploys/{build_reference}")
        return self.parse_deploy(deploy)

    async def list_builds(self, max_results: int, commit_sha: Optional[str] = None) -> List[StatusSnapshot]:
        deploys = await self.get_json(f"/sites/{self.site_id}/deploys", params={"per_page": max_results})
        if not isinstance(deploys, list):
            raise ProviderError(self.platform.value, "Unexpected deploy listing payload")
        deploys = deploys[:max_results]
        if commit_sha:
            deploys = [item for item in deploys if item.get("commit_ref") == commit_sha]
        return [self.parse_deploy(item) for item in deploys]

    def parse_deploy(self, deploy: Dict[str, Any]) -> StatusSnapshot:
        native_status = deploy.get("state")
        finished = deploy.get("published_at")
        if native_status in {"error", "rejected"}:
            finished = finished or deploy.get("updated_at")
        return self.snapshot(
            native_status,
            build_reference=deploy.get("id"),
            start_time=parse_timestamp(deploy.get("created_at")),
            finish_time=parse_timestamp(finished),
            error_message=deploy.get("error_message"),
            metadata={
                "deployId": deploy.get("id"),
                "netlifyState": native_status,
                "siteId": deploy.get("site_id") or self.site_id,
                "deployUrl": deploy.get("deploy_ssl_url") or deploy.get("deploy_url"),
                "sourceCommit": deploy.get("commit_ref"),
                "deployTime": deploy.get("deploy_time"),
            },
        )
