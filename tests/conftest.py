"""
Shared fixtures: in-memory collaborators and a sleep that only yields.
"""

import asyncio

import pytest

from accountlink.config import Settings
from accountlink.core.errors import LogoutNotifyFailure
from accountlink.core.events import EventBus
from accountlink.core.models import (
    AccountBinding,
    AdminIdentity,
    PlatformIdentity,
    PollResult,
    QRCodeTicket,
    UserProfile,
    VIPStatus,
)
from accountlink.integrations.base import AccountAPI, BindingAPI
from accountlink.storage import AdminSessionStore, IdentityCache, InMemoryStore


# =============================================================================
# Fakes
# =============================================================================


class FakeSleep:
    """Records every requested delay and yields once instead of waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)

    def total(self, seconds: float) -> float:
        """Simulated time spent in sleeps of exactly ``seconds``."""
        return sum(s for s in self.calls if s == seconds)


class FakeBindingAPI(BindingAPI):
    """
    Scripted QR backend.

    ``polls`` is consumed one entry per poll; an exception entry is raised.
    Once it runs out every poll reports "nothing yet".
    """

    def __init__(self, polls=None, expires_in: int | None = 300, fail_create=None):
        self.polls = list(polls or [])
        self.expires_in = expires_in
        self.fail_create = fail_create
        self.create_gate: asyncio.Event | None = None
        self.created: list[QRCodeTicket] = []
        self.poll_calls: list[str] = []
        self.bindings: list[AccountBinding] = []
        self.fail_unbind: Exception | None = None

    async def create_binding(self, platform: str, user_id: str) -> QRCodeTicket:
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create is not None:
            raise self.fail_create

        key = f"key-{len(self.created) + 1}"
        ticket = QRCodeTicket(
            qr_payload=f"https://qr.example/{key}",
            qr_code_key=key,
            expires_in_seconds=self.expires_in,
        )
        self.created.append(ticket)
        return ticket

    async def poll_binding(self, qr_code_key: str) -> PollResult:
        self.poll_calls.append(qr_code_key)
        if not self.polls:
            return PollResult()
        result = self.polls.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def list_bindings(self, user_id: str) -> list[AccountBinding]:
        return list(self.bindings)

    async def unbind(self, binding_id: str) -> None:
        if self.fail_unbind is not None:
            raise self.fail_unbind
        self.bindings = [b for b in self.bindings if b.id != binding_id]


class FakeAccountAPI(AccountAPI):
    """Account backend whose answers are plain attributes."""

    def __init__(self):
        self.platform: PlatformIdentity | None = None
        self.profile: UserProfile | None = UserProfile(uid="fb-1", email="admin@example.com")
        self.vip: VIPStatus = VIPStatus()
        self.errors: dict[str, Exception] = {}
        self.gate: asyncio.Event | None = None
        self.logout_calls = 0

    async def _answer(self, name: str, value):
        if self.gate is not None:
            await self.gate.wait()
        if name in self.errors:
            raise self.errors[name]
        return value

    async def fetch_platform_link_status(self):
        return await self._answer("platform", self.platform)

    async def fetch_user_profile(self):
        return await self._answer("profile", self.profile)

    async def fetch_vip_status(self):
        return await self._answer("vip", self.vip)

    async def notify_logout(self):
        self.logout_calls += 1
        if "logout" in self.errors:
            raise self.errors["logout"]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        state_dir=str(tmp_path / "state"),
        binding_poll_interval_seconds=2.0,
        binding_default_expires_in=300,
        binding_success_close_delay_seconds=0,
        fetch_retry_attempts=3,
        fetch_retry_max_wait_seconds=0,
        sentry_dsn="",
    )


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def binding_api():
    return FakeBindingAPI()


@pytest.fixture
def account_api():
    return FakeAccountAPI()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def admin():
    return AdminIdentity(id=42, name="Ada", username="ada", email="ada@example.com")


@pytest.fixture
def sessions(admin):
    store = AdminSessionStore(InMemoryStore())
    store.save(admin, "tok-123")
    return store


@pytest.fixture
def cache():
    return IdentityCache(InMemoryStore())


@pytest.fixture
def wait_until():
    """Yield to the loop until ``predicate()`` holds."""

    async def _wait(predicate, max_iterations: int = 5000):
        for _ in range(max_iterations):
            if predicate():
                return
            await asyncio.sleep(0)
        raise AssertionError("condition never became true")

    return _wait


@pytest.fixture
def logout_failure():
    return LogoutNotifyFailure("backend down", code=503)


@pytest.fixture
def make_binding_api():
    """Factory for scripted binding backends."""
    return FakeBindingAPI
