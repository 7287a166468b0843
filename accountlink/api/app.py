"""
Local HTTP API for accountlink.

A thin surface that lets a UI read the effective user and drive the
binding dialog. All behaviour lives in the session manager and the
binding coordinator; these routes only translate.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from accountlink.auth import AuthSessionManager, vip_features
from accountlink.auth.vip import days_remaining, effective_tier
from accountlink.binding import BindingCoordinator, BindingView
from accountlink.config import Settings, get_settings
from accountlink.core.errors import ReconciliationFailure, UnbindFailure
from accountlink.core.events import EventBus
from accountlink.core.models import AccountBinding, Platform
from accountlink.integrations.backend import BackendClient
from accountlink.integrations.sentry import init_sentry
from accountlink.storage import AdminSessionStore, IdentityCache, create_local_stores

logger = logging.getLogger(__name__)


# =============================================================================
# App State
# =============================================================================


class AppState:
    """Application state - wired at startup, or handed in by tests."""

    def __init__(
        self,
        manager: AuthSessionManager,
        coordinator: BindingCoordinator,
        bus: EventBus,
    ):
        self.manager = manager
        self.coordinator = coordinator
        self.bus = bus


def build_state(settings: Settings) -> AppState:
    """Wire the default stack: JSON stores, HTTP backend, one event bus."""
    session_store, cache_store = create_local_stores(settings.state_path)
    sessions = AdminSessionStore(session_store)
    cache = IdentityCache(cache_store)

    client = BackendClient(settings=settings, token_provider=sessions.token)
    bus = EventBus()

    manager = AuthSessionManager(client, sessions, cache=cache, bus=bus)
    coordinator = BindingCoordinator(client, bus=bus, settings=settings)
    return AppState(manager=manager, coordinator=coordinator, bus=bus)


# =============================================================================
# Request/Response Models
# =============================================================================


class OpenBindingRequest(BaseModel):
    platform: Platform = Platform.BILIBILI
    platform_name: str | None = None


class SessionResponse(BaseModel):
    status: str
    authenticated: bool
    identity: dict[str, Any] | None
    vip_status: dict[str, Any] | None
    is_vip: bool
    tier: str | None
    days_remaining: int | None
    from_cache: bool
    error: str | None


class TierCheckResponse(BaseModel):
    tier: str
    allowed: bool


# =============================================================================
# Dependencies
# =============================================================================


def get_app_state(request: Request) -> AppState:
    return request.app.state.accountlink


def get_manager(state: AppState = Depends(get_app_state)) -> AuthSessionManager:
    return state.manager


def get_coordinator(state: AppState = Depends(get_app_state)) -> BindingCoordinator:
    return state.coordinator


def _require_admin(manager: AuthSessionManager) -> str:
    identity = manager.identity
    if identity is None or manager.state.from_cache:
        raise HTTPException(status_code=401, detail="Log in first")
    return identity.admin_id


def _session_response(manager: AuthSessionManager) -> SessionResponse:
    state = manager.state
    return SessionResponse(
        status=state.status.value,
        authenticated=state.is_authenticated,
        identity=state.identity.model_dump(mode="json") if state.identity else None,
        vip_status=state.vip_status.model_dump(mode="json") if state.vip_status else None,
        is_vip=manager.is_vip(),
        tier=None if state.from_cache else effective_tier(state.vip_status),
        days_remaining=days_remaining(state.vip_status),
        from_cache=state.from_cache,
        error=state.error,
    )


# =============================================================================
# App Setup
# =============================================================================


def create_app(state: AppState | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    When ``state`` is given (tests), nothing is wired or initialized at
    startup; otherwise the default stack is built in the lifespan.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_sentry(settings)

        if getattr(app.state, "accountlink", None) is None:
            app.state.accountlink = build_state(settings)
            await app.state.accountlink.manager.initialize()

        logger.info(f"accountlink API starting in {settings.environment} mode")

        yield

        await app.state.accountlink.coordinator.shutdown()
        app.state.accountlink.manager.close()
        logger.info("accountlink API shutting down")

    app = FastAPI(
        title="accountlink",
        description="Platform account binding and identity state",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.accountlink = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # =========================================================================
    # Session
    # =========================================================================

    @app.get("/session", response_model=SessionResponse)
    async def get_session(manager: AuthSessionManager = Depends(get_manager)):
        return _session_response(manager)

    @app.post("/session/refresh", response_model=SessionResponse)
    async def refresh_session(manager: AuthSessionManager = Depends(get_manager)):
        await manager.refresh()
        return _session_response(manager)

    @app.post("/session/logout", response_model=SessionResponse)
    async def logout(
        manager: AuthSessionManager = Depends(get_manager),
        coordinator: BindingCoordinator = Depends(get_coordinator),
    ):
        await coordinator.close()
        await manager.logout()
        return _session_response(manager)

    @app.get("/session/tier/{tier}", response_model=TierCheckResponse)
    async def check_tier(tier: str, manager: AuthSessionManager = Depends(get_manager)):
        return TierCheckResponse(tier=tier, allowed=manager.has_tier(tier))

    @app.get("/session/features")
    async def get_features(manager: AuthSessionManager = Depends(get_manager)) -> dict[str, Any]:
        if not manager.is_vip():
            raise HTTPException(status_code=403, detail="VIP membership required")
        return vip_features(manager.vip_status)

    # =========================================================================
    # Binding
    # =========================================================================

    @app.get("/binding", response_model=BindingView)
    async def get_binding(coordinator: BindingCoordinator = Depends(get_coordinator)):
        return coordinator.snapshot()

    @app.post("/binding/open", response_model=BindingView)
    async def open_binding(
        request: OpenBindingRequest,
        manager: AuthSessionManager = Depends(get_manager),
        coordinator: BindingCoordinator = Depends(get_coordinator),
    ):
        identity = manager.identity
        if identity is None or manager.state.from_cache:
            raise HTTPException(status_code=401, detail="Log in before linking an account")

        await coordinator.open(
            request.platform.value,
            identity.admin_id,
            platform_name=request.platform_name,
        )
        return coordinator.snapshot()

    @app.post("/binding/refresh", response_model=BindingView)
    async def refresh_binding(coordinator: BindingCoordinator = Depends(get_coordinator)):
        if coordinator.session is None:
            raise HTTPException(status_code=404, detail="No binding in progress")
        await coordinator.refresh()
        return coordinator.snapshot()

    @app.post("/binding/close", response_model=BindingView)
    async def close_binding(coordinator: BindingCoordinator = Depends(get_coordinator)):
        await coordinator.close()
        return coordinator.snapshot()

    # =========================================================================
    # Existing bindings
    # =========================================================================

    @app.get("/bindings", response_model=list[AccountBinding])
    async def list_bindings(
        manager: AuthSessionManager = Depends(get_manager),
        coordinator: BindingCoordinator = Depends(get_coordinator),
    ):
        admin_id = _require_admin(manager)
        try:
            return await coordinator.list_bindings(admin_id)
        except ReconciliationFailure as e:
            raise HTTPException(status_code=502, detail=e.message)

    @app.delete("/bindings/{binding_id}", response_model=SessionResponse)
    async def unbind(
        binding_id: str,
        manager: AuthSessionManager = Depends(get_manager),
        coordinator: BindingCoordinator = Depends(get_coordinator),
    ):
        admin_id = _require_admin(manager)
        try:
            await coordinator.unbind(binding_id, admin_id)
        except UnbindFailure as e:
            raise HTTPException(status_code=502, detail=e.message)
        return _session_response(manager)

    return app


app = create_app()
