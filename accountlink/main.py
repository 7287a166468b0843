"""
accountlink - command line entry point.

    accountlink status            Show the effective user and VIP state
    accountlink bind [platform]   Link a platform account by QR code
    accountlink accounts          List linked platform accounts
    accountlink unbind <id>       Remove a linked platform account
    accountlink logout            Clear the local session
    accountlink serve             Run the local HTTP API
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from accountlink.auth import AuthSessionManager
from accountlink.auth.vip import days_remaining, effective_tier
from accountlink.binding import BindingCoordinator
from accountlink.config import Settings, get_settings
from accountlink.core.errors import ReconciliationFailure, UnbindFailure
from accountlink.core.events import BINDING_STATE_CHANGED, Event, EventBus
from accountlink.core.models import BindingState, Platform
from accountlink.integrations.backend import BackendClient
from accountlink.integrations.sentry import init_sentry
from accountlink.storage import AdminSessionStore, IdentityCache, create_local_stores


def _build(settings: Settings) -> tuple[AuthSessionManager, BindingCoordinator, EventBus]:
    session_store, cache_store = create_local_stores(settings.state_path)
    sessions = AdminSessionStore(session_store)
    client = BackendClient(settings=settings, token_provider=sessions.token)
    bus = EventBus()
    manager = AuthSessionManager(client, sessions, cache=IdentityCache(cache_store), bus=bus)
    coordinator = BindingCoordinator(client, bus=bus, settings=settings)
    return manager, coordinator, bus


def _print_status(manager: AuthSessionManager) -> None:
    state = manager.state
    if state.identity is None:
        print("Not logged in")
        return

    identity = state.identity
    print(f"User:     {identity.display_name} ({identity.id})")
    print(f"Source:   {identity.source.value}")
    if identity.platform_uid:
        print(f"Platform: linked ({identity.platform_uid})")
    else:
        print("Platform: not linked")

    if manager.is_vip():
        days = days_remaining(state.vip_status)
        suffix = f", {days} days left" if days is not None else ""
        print(f"VIP:      {effective_tier(state.vip_status)}{suffix}")
    else:
        print("VIP:      no")

    if state.error:
        print(f"Warning:  {state.error}")


async def status(settings: Settings) -> int:
    manager, _, _ = _build(settings)
    await manager.initialize()
    _print_status(manager)
    return 0


async def bind(settings: Settings, platform: str) -> int:
    manager, coordinator, bus = _build(settings)
    await manager.initialize()

    if manager.identity is None:
        print("Log in first: no admin session found")
        return 1

    done = asyncio.Event()

    async def on_change(event: Event) -> None:
        state = BindingState(event.payload["state"])
        session = coordinator.session
        if state == BindingState.AWAITING_SCAN and session is not None:
            print(f"\nScan this code with the {platform} app:\n\n  {session.qr_payload}\n")
            print(f"Expires in {session.countdown}")
        elif session is not None:
            print(session.message)
        if state.is_terminal:
            done.set()

    bus.subscribe(BINDING_STATE_CHANGED, on_change)

    session = await coordinator.open(platform, manager.identity.admin_id)
    if session.state == BindingState.ERROR:
        print(f"Could not create QR code: {session.message}")
        return 1

    await done.wait()
    bound = session.state == BindingState.BOUND

    # Completion work is cancelled here, so pick up the new link explicitly
    await coordinator.shutdown()
    if bound:
        await manager.refresh()
        _print_status(manager)
    return 0 if bound else 1


async def accounts(settings: Settings) -> int:
    manager, coordinator, _ = _build(settings)
    await manager.initialize()
    if manager.identity is None:
        print("Log in first: no admin session found")
        return 1

    try:
        bindings = await coordinator.list_bindings(manager.identity.admin_id)
    except ReconciliationFailure as e:
        print(f"Could not list accounts: {e.message}")
        return 1

    if not bindings:
        print("No linked accounts")
    for binding in bindings:
        primary = " (primary)" if binding.is_primary else ""
        since = f", since {binding.create_time:%Y-%m-%d}" if binding.create_time else ""
        print(f"{binding.id}  {binding.platform:<16} {binding.username or '-'}{primary}{since}")
    return 0


async def unbind(settings: Settings, binding_id: str) -> int:
    manager, coordinator, _ = _build(settings)
    await manager.initialize()
    if manager.identity is None:
        print("Log in first: no admin session found")
        return 1

    try:
        await coordinator.unbind(binding_id, manager.identity.admin_id)
    except UnbindFailure as e:
        print(f"Could not unbind: {e.message}")
        return 1

    _print_status(manager)
    return 0


async def logout(settings: Settings) -> int:
    manager, _, _ = _build(settings)
    await manager.initialize()
    await manager.logout()
    print("Logged out")
    return 0


def serve(settings: Settings) -> int:
    import uvicorn

    uvicorn.run("accountlink.api.app:app", host=settings.api_host, port=settings.api_port)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="accountlink")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show the effective user")
    bind_parser = sub.add_parser("bind", help="Link a platform account")
    bind_parser.add_argument(
        "platform",
        nargs="?",
        default=None,
        choices=[p.value for p in Platform],
    )
    sub.add_parser("accounts", help="List linked platform accounts")
    unbind_parser = sub.add_parser("unbind", help="Remove a linked platform account")
    unbind_parser.add_argument("binding_id")
    sub.add_parser("logout", help="Clear the local session")
    sub.add_parser("serve", help="Run the local HTTP API")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_sentry(settings)

    if args.command == "status":
        return asyncio.run(status(settings))
    if args.command == "bind":
        return asyncio.run(bind(settings, args.platform or settings.default_platform))
    if args.command == "accounts":
        return asyncio.run(accounts(settings))
    if args.command == "unbind":
        return asyncio.run(unbind(settings, args.binding_id))
    if args.command == "logout":
        return asyncio.run(logout(settings))
    return serve(settings)


if __name__ == "__main__":
    raise SystemExit(main())
