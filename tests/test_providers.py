from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from google.auth import credentials as google_credentials
from google.oauth2.credentials import Credentials as OAuthCredentials

from conftest import START, finished, running
from deploybench.config import Settings
from deploybench.exceptions import ConfigurationError, MissingCredentialsError, ProviderError
from deploybench.providers import (
    ByCommit,
    ById,
    ByTimeWindow,
    CloudBuildProvider,
    NetlifyProvider,
    VercelProvider,
    build_provider,
    load_service_account,
    select_earliest_after,
)
from deploybench.schemas import BuildStatus, Platform


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def static_token(token: str) -> OAuthCredentials:
    return OAuthCredentials(token=token)


class RotatingCredentials(google_credentials.Credentials):
    """Hands out a new token on every refresh."""

    def __init__(self) -> None:
        super().__init__()
        self.refreshes = 0

    def refresh(self, request) -> None:
        self.refreshes += 1
        self.token = f"fresh-{self.refreshes}"


@pytest.mark.asyncio
async def test_cloud_build_success_snapshot() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "id": "cb-42",
                "status": "SUCCESS",
                "startTime": "2025-03-01T12:00:05.123456789Z",
                "finishTime": "2025-03-01T12:03:05Z",
                "logUrl": "https://console.cloud.google.com/logs",
                "substitutions": {"COMMIT_SHA": "abc123"},
            },
        )

    async with CloudBuildProvider("proj", static_token("secret"), client=client_for(handler)) as provider:
        snapshot = await provider.get_status("cb-42")

    assert seen["url"] == "https://cloudbuild.googleapis.com/v1/projects/proj/builds/cb-42"
    assert seen["auth"] == "Bearer secret"
    assert snapshot.status is BuildStatus.SUCCESS
    assert snapshot.completed
    assert snapshot.completion_time == datetime(2025, 3, 1, 12, 3, 5, tzinfo=timezone.utc)
    assert snapshot.duration_seconds == pytest.approx(179.876543, abs=1e-3)
    assert snapshot.metadata["sourceCommit"] == "abc123"
    assert snapshot.metadata["cloudBuildStatus"] == "SUCCESS"


@pytest.mark.asyncio
async def test_cloud_build_failure_carries_status_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "cb-1",
                "status": "FAILURE",
                "statusDetail": "step 2 exited with 1",
                "startTime": "2025-03-01T12:00:00Z",
                "finishTime": "2025-03-01T12:01:00Z",
            },
        )

    provider = CloudBuildProvider("proj", static_token("secret"), client=client_for(handler))
    snapshot = await provider.get_status("cb-1")

    assert snapshot.status is BuildStatus.FAILURE
    assert snapshot.error_message == "step 2 exited with 1"


@pytest.mark.asyncio
async def test_cloud_build_timeout_and_in_progress() -> None:
    states = iter(["WORKING", "TIMEOUT"])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "cb-1", "status": next(states), "startTime": "2025-03-01T12:00:00Z"})

    provider = CloudBuildProvider("proj", static_token("secret"), client=client_for(handler))
    working = await provider.get_status("cb-1")
    timed_out = await provider.get_status("cb-1")

    assert working.status is BuildStatus.IN_PROGRESS
    assert working.completed is False
    assert working.completion_time is None
    assert timed_out.status is BuildStatus.TIMEOUT
    assert timed_out.completed is True


@pytest.mark.asyncio
async def test_cloud_build_commit_lookup_sends_filter() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"builds": [{"id": "cb-9", "status": "QUEUED"}]})

    provider = CloudBuildProvider("proj", static_token("secret"), client=client_for(handler))
    found = await provider.find_build(ByCommit("abc123", max_results=5))

    assert found is not None
    assert found.build_reference == "cb-9"
    assert seen["params"] == {"pageSize": "5", "filter": 'source.repoSource.commitSha="abc123"'}


@pytest.mark.asyncio
async def test_cloud_build_refreshes_expired_token() -> None:
    tokens = []

    def handler(request: httpx.Request) -> httpx.Response:
        tokens.append(request.headers["Authorization"])
        return httpx.Response(200, json={"id": "cb-1", "status": "WORKING"})

    credentials = RotatingCredentials()
    provider = CloudBuildProvider("proj", credentials, client=client_for(handler))
    await provider.get_status("cb-1")
    await provider.get_status("cb-1")
    credentials.expiry = datetime(2000, 1, 1)
    await provider.get_status("cb-1")

    assert tokens == ["Bearer fresh-1", "Bearer fresh-1", "Bearer fresh-2"]
    assert credentials.refreshes == 2


@pytest.mark.asyncio
async def test_cloud_build_token_refresh_failure_is_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request should be sent without a token")

    expired = OAuthCredentials(token="old", expiry=datetime(2000, 1, 1))
    provider = CloudBuildProvider("proj", expired, client=client_for(handler))

    with pytest.raises(ProviderError) as excinfo:
        await provider.get_status("cb-1")

    assert excinfo.value.platform == "pantheon"
    assert "Google access token" in excinfo.value.message


@pytest.mark.parametrize("key_json", ["not json", "[]", '{"type": "service_account"}'])
def test_load_service_account_rejects_unusable_keys(key_json) -> None:
    with pytest.raises(ConfigurationError, match="GCP_SERVICE_ACCOUNT_JSON"):
        load_service_account(key_json)


@pytest.mark.asyncio
async def test_vercel_deployment_snapshot() -> None:
    created = START + timedelta(seconds=2)
    ready = START + timedelta(seconds=62)
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "id": "dpl_1",
                "readyState": "READY",
                "createdAt": millis(created),
                "ready": millis(ready),
                "url": "site.vercel.app",
                "meta": {"githubCommitSha": "abc123"},
            },
        )

    provider = VercelProvider("tok", team_id="team_1", client=client_for(handler))
    snapshot = await provider.get_status("dpl_1")

    assert seen["path"] == "/v13/deployments/dpl_1"
    assert seen["params"] == {"teamId": "team_1"}
    assert snapshot.status is BuildStatus.SUCCESS
    assert snapshot.completion_time == ready
    assert snapshot.duration_seconds == pytest.approx(60.0)
    assert snapshot.metadata["sourceCommit"] == "abc123"


@pytest.mark.asyncio
async def test_vercel_canceled_is_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "dpl_1", "readyState": "CANCELED", "ready": millis(START)})

    provider = VercelProvider("tok", client=client_for(handler))
    snapshot = await provider.get_status("dpl_1")

    assert snapshot.status is BuildStatus.FAILURE
    assert snapshot.completed


@pytest.mark.asyncio
async def test_vercel_commit_lookup_filters_client_side() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "deployments": [
                    {"uid": "dpl_new", "state": "BUILDING", "created": millis(START), "meta": {"githubCommitSha": "other"}},
                    {"uid": "dpl_match", "state": "QUEUED", "created": millis(START), "meta": {"githubCommitSha": "abc123"}},
                ]
            },
        )

    provider = VercelProvider("tok", project_id="prj_1", client=client_for(handler))
    found = await provider.find_build(ByCommit("abc123"))

    assert found is not None
    assert found.build_reference == "dpl_match"
    assert found.status is BuildStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_time_window_picks_earliest_build_after_trigger() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "deployments": [
                    {"uid": "latest", "state": "BUILDING", "created": millis(START + timedelta(seconds=90))},
                    {"uid": "ours", "state": "BUILDING", "created": millis(START + timedelta(seconds=4))},
                    {"uid": "older", "state": "READY", "created": millis(START - timedelta(minutes=10))},
                ]
            },
        )

    provider = VercelProvider("tok", client=client_for(handler))
    found = await provider.find_build(ByTimeWindow(after=START - timedelta(seconds=30)))

    assert found is not None
    assert found.build_reference == "ours"


@pytest.mark.asyncio
async def test_netlify_deploy_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/deploys/nf-1"
        return httpx.Response(
            200,
            json={
                "id": "nf-1",
                "state": "ready",
                "created_at": "2025-03-01T12:00:01.000Z",
                "published_at": "2025-03-01T12:00:46.000Z",
                "commit_ref": "abc123",
                "deploy_time": 42,
            },
        )

    provider = NetlifyProvider("tok", "site-1", client=client_for(handler))
    snapshot = await provider.get_status("nf-1")

    assert snapshot.status is BuildStatus.SUCCESS
    assert snapshot.duration_seconds == pytest.approx(45.0)
    assert snapshot.metadata["siteId"] == "site-1"
    assert snapshot.metadata["deployTime"] == 42


@pytest.mark.asyncio
async def test_netlify_error_uses_updated_at_and_platform_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "nf-1",
                "state": "error",
                "error_message": "Build script returned non-zero exit code: 2",
                "created_at": "2025-03-01T12:00:00Z",
                "updated_at": "2025-03-01T12:00:30Z",
            },
        )

    provider = NetlifyProvider("tok", "site-1", client=client_for(handler))
    snapshot = await provider.get_status("nf-1")

    assert snapshot.status is BuildStatus.FAILURE
    assert snapshot.completion_time == datetime(2025, 3, 1, 12, 0, 30, tzinfo=timezone.utc)
    assert snapshot.error_message == "Build script returned non-zero exit code: 2"


@pytest.mark.asyncio
async def test_netlify_listing_must_be_a_list() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"deploys": []})

    provider = NetlifyProvider("tok", "site-1", client=client_for(handler))
    with pytest.raises(ProviderError):
        await provider.list_builds(10)


@pytest.mark.asyncio
async def test_unknown_native_status_keeps_polling(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "nf-1", "state": "quantum"})

    provider = NetlifyProvider("tok", "site-1", client=client_for(handler))
    first = await provider.get_status("nf-1")
    await provider.get_status("nf-1")

    assert first.status is BuildStatus.IN_PROGRESS
    assert first.completed is False
    assert caplog.text.count("Unrecognised build status") == 1


@pytest.mark.asyncio
async def test_http_error_becomes_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"code": "forbidden", "message": "Not authorized"}})

    provider = VercelProvider("bad", client=client_for(handler))
    with pytest.raises(ProviderError) as excinfo:
        await provider.get_status("dpl_1")

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Not authorized"
    assert excinfo.value.platform == "vercel"


@pytest.mark.asyncio
async def test_transport_error_becomes_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = NetlifyProvider("tok", "site-1", client=client_for(handler))
    with pytest.raises(ProviderError) as excinfo:
        await provider.get_status("nf-1")

    assert excinfo.value.status_code is None
    assert "connection refused" in excinfo.value.message


@pytest.mark.asyncio
async def test_find_build_by_id_delegates_to_get_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "nf-7", "state": "building"})

    provider = NetlifyProvider("tok", "site-1", client=client_for(handler))
    found = await provider.find_build(ById("nf-7"))

    assert found is not None
    assert found.build_reference == "nf-7"


def test_select_earliest_after_ignores_older_and_undated_builds() -> None:
    builds = [
        running(reference="undated"),
        running(reference="before", start=START - timedelta(seconds=1)),
        finished(reference="second", start=START + timedelta(seconds=20)),
        running(reference="first", start=START + timedelta(seconds=5)),
    ]

    assert select_earliest_after(builds, START).build_reference == "first"
    assert select_earliest_after(builds, START + timedelta(minutes=5)) is None


def test_select_earliest_after_keeps_listing_order_on_ties() -> None:
    builds = [running(reference="a", start=START), running(reference="b", start=START)]

    assert select_earliest_after(builds, START).build_reference == "a"


def test_build_provider_requires_credentials() -> None:
    settings = Settings(_env_file=None, netlify_api_token="tok")

    with pytest.raises(MissingCredentialsError) as excinfo:
        build_provider(Platform.NETLIFY, settings)

    assert excinfo.value.missing == ["NETLIFY_SITE_ID"]


def test_build_provider_returns_platform_client(monkeypatch) -> None:
    loaded = []

    def fake_load(key_json):
        loaded.append(key_json)
        return static_token("tok")

    monkeypatch.setattr("deploybench.providers.load_service_account", fake_load)
    settings = Settings(
        _env_file=None,
        gcp_project_id="proj",
        gcp_service_account_json='{"type": "service_account"}',
        vercel_api_token="tok",
    )
    client = httpx.AsyncClient()

    assert isinstance(build_provider(Platform.PANTHEON, settings, client=client), CloudBuildProvider)
    assert isinstance(build_provider(Platform.VERCEL, settings, client=client), VercelProvider)
    assert loaded == ['{"type": "service_account"}']


def test_build_provider_rejects_malformed_service_account() -> None:
    settings = Settings(_env_file=None, gcp_project_id="proj", gcp_service_account_json="{not json")

    with pytest.raises(ConfigurationError, match="GCP_SERVICE_ACCOUNT_JSON"):
        build_provider(Platform.PANTHEON, settings)
