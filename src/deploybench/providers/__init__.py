"""Platform status providers and the factory that builds them from settings."""
from __future__ import annotations

from typing import Callable, Optional

import httpx

from ..config import Settings
from ..exceptions import MissingCredentialsError
from ..schemas import Platform
from .base import ByCommit, ById, ByTimeWindow, HttpStatusProvider, LookupCriteria, StatusProvider, select_earliest_after
from .cloudbuild import CloudBuildProvider, load_service_account
from .netlify import NetlifyProvider
from .vercel import VercelProvider

ProviderFactory = Callable[[Platform], StatusProvider]


def build_provider(platform: Platform, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> StatusProvider:
    """Create a fresh provider for *platform*; each monitoring task owns its own."""

    missing = settings.missing_credentials(platform)
    if missing:
        raise MissingCredentialsError(platform.value, missing)

    timeout = settings.http_timeout_seconds
    if platform is Platform.PANTHEON:
        return CloudBuildProvider(
            settings.gcp_project_id,
            load_service_account(settings.gcp_service_account_json),
            timeout=timeout,
            client=client,
        )
    if platform is Platform.VERCEL:
        return VercelProvider(
            settings.vercel_api_token,
            project_id=settings.vercel_project_id,
            team_id=settings.vercel_team_id,
            timeout=timeout,
            client=client,
        )
    if platform is Platform.NETLIFY:
        return NetlifyProvider(settings.netlify_api_token, settings.netlify_site_id, timeout=timeout, client=client)
    raise ValueError(f"No status provider registered for {platform!r}")


def provider_factory(settings: Settings) -> ProviderFactory:
    def factory(platform: Platform) -> StatusProvider:
        return build_provider(platform, settings)

    return factory


__all__ = [
    "ByCommit",
    "ById",
    "ByTimeWindow",
    "CloudBuildProvider",
    "HttpStatusProvider",
    "LookupCriteria",
    "NetlifyProvider",
    "ProviderFactory",
    "StatusProvider",
    "VercelProvider",
    "build_provider",
    "load_service_account",
    "provider_factory",
    "select_earliest_after",
]
