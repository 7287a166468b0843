"""
Tests for the local HTTP API.

The app is built around a pre-wired state, so no lifespan runs and no
files or network are touched.
"""

import httpx
import pytest
import pytest_asyncio

from accountlink.api.app import AppState, create_app
from accountlink.auth import AuthSessionManager
from accountlink.binding import BindingCoordinator
from accountlink.core.errors import UnbindFailure
from accountlink.core.models import AccountBinding, PlatformIdentity, VIPStatus
from accountlink.storage import AdminSessionStore, InMemoryStore


@pytest.fixture
def coordinator(binding_api, bus, settings):
    # Real sleep: nothing should tick during a request
    return BindingCoordinator(binding_api, bus=bus, settings=settings)


@pytest.fixture
def make_api(account_api, coordinator, bus, settings):
    created = []

    async def _make(sessions):
        manager = AuthSessionManager(account_api, sessions, bus=bus)
        await manager.initialize()
        app = create_app(AppState(manager=manager, coordinator=coordinator, bus=bus), settings=settings)
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        created.append(client)
        return client

    return _make, created


@pytest_asyncio.fixture
async def api_factory(make_api, coordinator):
    make, created = make_api
    yield make
    await coordinator.shutdown()
    for client in created:
        await client.aclose()


# =============================================================================
# Session Route Tests
# =============================================================================


class TestSessionRoutes:
    @pytest.mark.asyncio
    async def test_health(self, api_factory, sessions):
        client = await api_factory(sessions)

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_session_linked_vip(self, api_factory, sessions, account_api):
        account_api.platform = PlatformIdentity(uid="U1", display_name="UpMaster")
        account_api.vip = VIPStatus(is_vip=True, tier="premium")
        client = await api_factory(sessions)

        body = (await client.get("/session")).json()

        assert body["status"] == "ready"
        assert body["authenticated"]
        assert body["identity"]["id"] == "U1"
        assert body["is_vip"]
        assert body["tier"] == "premium"

    @pytest.mark.asyncio
    async def test_tier_check(self, api_factory, sessions, account_api):
        account_api.vip = VIPStatus(is_vip=True, tier="basic")
        client = await api_factory(sessions)

        basic = (await client.get("/session/tier/basic")).json()
        premium = (await client.get("/session/tier/premium")).json()

        assert basic == {"tier": "basic", "allowed": True}
        assert premium == {"tier": "premium", "allowed": False}

    @pytest.mark.asyncio
    async def test_features_require_vip(self, api_factory, sessions):
        client = await api_factory(sessions)

        response = await client.get("/session/features")

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_features_for_vip(self, api_factory, sessions, account_api):
        account_api.vip = VIPStatus(is_vip=True, tier="premium")
        client = await api_factory(sessions)

        body = (await client.get("/session/features")).json()

        assert body["ai_translation"]
        assert "api_access" not in body

    @pytest.mark.asyncio
    async def test_refresh_picks_up_link(self, api_factory, sessions, account_api):
        client = await api_factory(sessions)
        account_api.platform = PlatformIdentity(uid="U9")

        body = (await client.post("/session/refresh")).json()

        assert body["identity"]["id"] == "U9"

    @pytest.mark.asyncio
    async def test_logout_clears_even_if_notify_fails(
        self, api_factory, sessions, account_api, logout_failure
    ):
        account_api.vip = VIPStatus(is_vip=True, tier="enterprise")
        account_api.errors["logout"] = logout_failure
        client = await api_factory(sessions)

        body = (await client.post("/session/logout")).json()

        assert not body["authenticated"]
        assert not body["is_vip"]
        assert sessions.load() is None


# =============================================================================
# Binding Route Tests
# =============================================================================


class TestBindingRoutes:
    @pytest.mark.asyncio
    async def test_open_requires_login(self, api_factory):
        client = await api_factory(AdminSessionStore(InMemoryStore()))

        response = await client.post("/binding/open", json={"platform": "bilibili"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_open_refresh_close(self, api_factory, sessions, binding_api):
        client = await api_factory(sessions)

        opened = (await client.post("/binding/open", json={"platform": "bilibili"})).json()
        assert opened["state"] == "awaiting_scan"
        assert opened["qr_payload"] == "https://qr.example/key-1"
        assert opened["countdown"] == "5:00"

        refreshed = (await client.post("/binding/refresh")).json()
        assert refreshed["qr_payload"] == "https://qr.example/key-2"
        assert refreshed["session_id"] != opened["session_id"]

        closed = (await client.post("/binding/close")).json()
        assert closed["session_id"] is None
        assert closed["state"] is None

        assert binding_api.created[0].qr_code_key == "key-1"

    @pytest.mark.asyncio
    async def test_unknown_platform_rejected(self, api_factory, sessions):
        client = await api_factory(sessions)

        response = await client.post("/binding/open", json={"platform": "myspace"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_refresh_without_binding(self, api_factory, sessions):
        client = await api_factory(sessions)

        response = await client.post("/binding/refresh")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_get_binding_when_idle(self, api_factory, sessions):
        client = await api_factory(sessions)

        body = (await client.get("/binding")).json()

        assert body["session_id"] is None
        assert not body["retryable"]


# =============================================================================
# Existing Binding Route Tests
# =============================================================================


class TestExistingBindingRoutes:
    @pytest.mark.asyncio
    async def test_list_requires_login(self, api_factory):
        client = await api_factory(AdminSessionStore(InMemoryStore()))

        response = await client.get("/bindings")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_list_bindings(self, api_factory, sessions, binding_api):
        binding_api.bindings = [
            AccountBinding(id="7", platform="bilibili", username="up", is_primary=True),
        ]
        client = await api_factory(sessions)

        body = (await client.get("/bindings")).json()

        assert len(body) == 1
        assert body[0]["id"] == "7"
        assert body[0]["platform"] == "bilibili"
        assert body[0]["is_primary"]

    @pytest.mark.asyncio
    async def test_unbind_refreshes_session(self, api_factory, sessions, binding_api, account_api):
        binding_api.bindings = [AccountBinding(id="7", platform="bilibili")]
        account_api.platform = PlatformIdentity(uid="U1")
        client = await api_factory(sessions)
        account_api.platform = None

        body = (await client.delete("/bindings/7")).json()

        assert binding_api.bindings == []
        assert body["identity"]["id"] == "42"
        assert body["identity"]["source"] == "admin"

    @pytest.mark.asyncio
    async def test_unbind_failure(self, api_factory, sessions, binding_api):
        binding_api.fail_unbind = UnbindFailure("binding not found", code=404)
        client = await api_factory(sessions)

        response = await client.delete("/bindings/7")

        assert response.status_code == 502
        assert response.json()["detail"] == "binding not found"
