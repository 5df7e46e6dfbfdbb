from __future__ import annotations

from deploybench.config import Settings
from deploybench.schemas import Platform, TriggerType


def test_defaults_without_environment() -> None:
    settings = Settings(_env_file=None)

    assert settings.database_url is None
    assert settings.polling.interval_seconds == 10
    assert settings.polling.max_wait_seconds == 3600
    assert settings.lookup.commit_attempts == 6
    assert settings.lookup.window_lead_seconds == 30
    assert settings.trigger_type is TriggerType.SCHEDULED


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://bench@localhost/bench")
    monkeypatch.setenv("GITHUB_EVENT_NAME", "workflow_dispatch")
    monkeypatch.setenv("POLLING__INTERVAL_SECONDS", "2")
    monkeypatch.setenv("POLLING__MAX_WAIT_SECONDS", "120")
    monkeypatch.setenv("LOOKUP__COMMIT_ATTEMPTS", "1")

    settings = Settings(_env_file=None)

    assert settings.database_url == "postgresql://bench@localhost/bench"
    assert settings.trigger_type is TriggerType.MANUAL
    assert settings.polling.interval_seconds == 2
    assert settings.polling.max_wait_seconds == 120
    assert settings.lookup.commit_attempts == 1


def test_dotenv_file_is_read(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("VERCEL_API_TOKEN=from-dotenv\nRUN_NOTES=weekly\n", encoding="utf-8")

    settings = Settings(_env_file=env_file)

    assert settings.vercel_api_token == "from-dotenv"
    assert settings.run_notes == "weekly"


def test_missing_credentials_per_platform() -> None:
    settings = Settings(_env_file=None, gcp_project_id="proj", vercel_api_token="tok")

    assert settings.missing_credentials(Platform.PANTHEON) == ["GCP_SERVICE_ACCOUNT_JSON"]
    assert settings.missing_credentials(Platform.VERCEL) == []
    assert settings.missing_credentials(Platform.NETLIFY) == ["NETLIFY_API_TOKEN", "NETLIFY_SITE_ID"]
    assert settings.credentials_present(Platform.VERCEL)


def test_to_dict_omits_secrets() -> None:
    settings = Settings(_env_file=None, vercel_api_token="secret-token", database_url="postgresql://u:pw@h/db")

    exported = settings.to_dict()

    assert exported["platforms"] == {"pantheon": False, "vercel": True, "netlify": False}
    assert "secret-token" not in repr(exported)
    assert "u:pw@h" not in repr(exported)
