"""Application configuration using Pydantic settings."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas import Platform, TriggerType


class PollingConfig(BaseModel):
    """Bounded wait policy applied to every platform build."""

    interval_seconds: float = Field(default=10.0, gt=0)
    max_wait_seconds: float = Field(default=60 * 60, gt=0)


class LookupConfig(BaseModel):
    """Pre-poll probes used to find a build that may not be registered yet."""

    initial_delay_seconds: float = Field(default=5.0, ge=0)
    commit_attempts: int = Field(default=6, ge=0)
    probe_interval_seconds: float = Field(default=10.0, ge=0)
    commit_scan: int = Field(default=10, gt=0)
    window_lead_seconds: float = Field(default=30.0, ge=0)
    window_scan: int = Field(default=50, gt=0)


# Environment variables each provider needs before it can be built.
REQUIRED_CREDENTIALS: Dict[Platform, List[str]] = {
    Platform.PANTHEON: ["gcp_project_id", "gcp_service_account_json"],
    Platform.VERCEL: ["vercel_api_token"],
    Platform.NETLIFY: ["netlify_api_token", "netlify_site_id"],
}


class Settings(BaseSettings):
    """Central application settings, read from the environment and ``.env``."""

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="ignore")

    database_url: Optional[str] = None
    database_echo: bool = False

    github_event_name: Optional[str] = None
    run_notes: Optional[str] = None

    gcp_project_id: Optional[str] = None
    gcp_service_account_json: Optional[str] = None
    vercel_api_token: Optional[str] = None
    vercel_project_id: Optional[str] = None
    vercel_team_id: Optional[str] = None
    netlify_api_token: Optional[str] = None
    netlify_site_id: Optional[str] = None

    http_timeout_seconds: float = Field(default=30.0, gt=0)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    lookup: LookupConfig = Field(default_factory=LookupConfig)

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.from_event_name(self.github_event_name)

    def missing_credentials(self, platform: Platform) -> List[str]:
        return [name.upper() for name in REQUIRED_CREDENTIALS[platform] if not getattr(self, name)]

    def credentials_present(self, platform: Platform) -> bool:
        return not self.missing_credentials(platform)

    def to_dict(self) -> Dict[str, Any]:
        """Return non-secret settings as a dictionary."""

        return {
            "database_echo": self.database_echo,
            "trigger_type": self.trigger_type.value,
            "http_timeout_seconds": self.http_timeout_seconds,
            "polling": self.polling.model_dump(),
            "lookup": self.lookup.model_dump(),
            "platforms": {platform.value: self.credentials_present(platform) for platform in Platform},
        }


__all__ = ["LookupConfig", "PollingConfig", "REQUIRED_CREDENTIALS", "Settings"]
