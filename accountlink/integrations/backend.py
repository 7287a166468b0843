# =============================================================================
# Backend API client
# =============================================================================
#
# Endpoints (relative to API_BASE_URL):
#   POST /accounts/qrcode           - Issue a binding QR code
#   POST /accounts/poll             - Poll a QR code's binding status
#   GET  /accounts/list             - Existing bindings for a user
#   DELETE /accounts/{id}           - Remove one binding
#   GET  /auth/status               - Linked platform account, if any
#   GET  /firebase/user/profile     - Profile with embedded VIP status
#   GET  /firebase/user/vip-status  - VIP status
#   POST /auth/logout               - Invalidate the platform session
#
# Every response is an envelope: {"code": 200, "message": "...", "data": {...}}
# Anything other than code 200 is a failure, whatever the HTTP status.
#
# =============================================================================

import logging
from typing import Any, Callable

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from accountlink.config import Settings, get_settings
from accountlink.core.errors import (
    AccountLinkError,
    CreationFailure,
    LogoutNotifyFailure,
    ReconciliationFailure,
    TransientPollFailure,
    UnbindFailure,
)
from accountlink.core.models import (
    AccountBinding,
    PlatformIdentity,
    PollResult,
    PollStatus,
    QRCodeTicket,
    UserProfile,
    VIPStatus,
)
from accountlink.integrations.base import AccountAPI, BindingAPI

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


class BackendClient(BindingAPI, AccountAPI):
    """HTTP implementation of the binding and account collaborators."""

    QRCODE_PATH = "/accounts/qrcode"
    POLL_PATH = "/accounts/poll"
    LIST_PATH = "/accounts/list"
    UNBIND_PATH = "/accounts/{binding_id}"
    AUTH_STATUS_PATH = "/auth/status"
    PROFILE_PATH = "/firebase/user/profile"
    VIP_STATUS_PATH = "/firebase/user/vip-status"
    LOGOUT_PATH = "/auth/logout"

    def __init__(
        self,
        settings: Settings | None = None,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        platform: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.token_provider = token_provider
        self.platform = platform or self.settings.default_platform
        self._transport = transport

    # =========================================================================
    # Transport
    # =========================================================================

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=self.settings.api_timeout_seconds,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    def _auth_headers(self) -> dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _send(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        async with self._client() as client:
            return await client.request(
                method, path, json=json, params=params, headers=self._auth_headers()
            )

    async def _send_with_retry(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Retry transport errors only; an answer from the server is final."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.fetch_retry_attempts)),
            wait=wait_exponential(multiplier=0.5, max=self.settings.fetch_retry_max_wait_seconds),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, path, params=params)
        raise AssertionError("unreachable")

    def _unwrap(
        self,
        response: httpx.Response,
        error_cls: type[AccountLinkError],
        default_message: str,
    ) -> Any:
        """Check the response envelope and return its ``data``."""
        try:
            body = response.json()
        except ValueError:
            raise error_cls(
                f"{default_message}: invalid response (HTTP {response.status_code})",
                code=response.status_code,
            )

        if not isinstance(body, dict):
            raise error_cls(f"{default_message}: unexpected response", code=response.status_code)

        code = body.get("code", response.status_code)
        if code != 200:
            message = body.get("message") or body.get("msg") or default_message
            raise error_cls(message, code=code)

        return body.get("data")

    async def _call(
        self,
        method: str,
        path: str,
        error_cls: type[AccountLinkError],
        default_message: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry: bool = False,
    ) -> Any:
        try:
            if retry:
                response = await self._send_with_retry(method, path, params=params)
            else:
                response = await self._send(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise error_cls(f"{default_message}: {e.__class__.__name__}") from e

        return self._unwrap(response, error_cls, default_message)

    # =========================================================================
    # BindingAPI
    # =========================================================================

    async def create_binding(self, platform: str, user_id: str) -> QRCodeTicket:
        data = await self._call(
            "POST",
            self.QRCODE_PATH,
            CreationFailure,
            "Failed to generate QR code",
            json={"platform": platform, "user_id": user_id},
        )
        try:
            ticket = QRCodeTicket.model_validate(data)
        except ValidationError as e:
            raise CreationFailure("Failed to generate QR code: malformed response") from e

        logger.info(f"QR code issued for {platform} (key={ticket.qr_code_key})")
        return ticket

    async def poll_binding(self, qr_code_key: str) -> PollResult:
        data = await self._call(
            "POST",
            self.POLL_PATH,
            TransientPollFailure,
            "Poll failed",
            json={"qr_code_key": qr_code_key},
        )
        if not data:
            raise TransientPollFailure("Poll returned no data")
        try:
            result = PollResult.model_validate(data)
        except ValidationError as e:
            raise TransientPollFailure("Poll returned malformed data") from e
        if result.status == PollStatus.BOUND and not result.platform_uid:
            raise TransientPollFailure("Poll reported bound without a platform uid")
        return result

    async def list_bindings(self, user_id: str) -> list[AccountBinding]:
        data = await self._call(
            "GET",
            self.LIST_PATH,
            ReconciliationFailure,
            "Failed to list bindings",
            params={"user_id": user_id},
            retry=True,
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise ReconciliationFailure("Malformed binding list")
        try:
            return [AccountBinding.model_validate(row) for row in data]
        except ValidationError as e:
            raise ReconciliationFailure("Malformed binding list") from e

    async def unbind(self, binding_id: str) -> None:
        await self._call(
            "DELETE",
            self.UNBIND_PATH.format(binding_id=binding_id),
            UnbindFailure,
            "Failed to unbind account",
        )
        logger.info(f"Binding {binding_id} removed")

    # =========================================================================
    # AccountAPI
    # =========================================================================

    async def fetch_platform_link_status(self) -> PlatformIdentity | None:
        data = await self._call(
            "GET",
            self.AUTH_STATUS_PATH,
            ReconciliationFailure,
            "Failed to check platform link",
            retry=True,
        )
        if not isinstance(data, dict) or not data.get(f"{self.platform}_connected"):
            return None

        user = data.get(f"{self.platform}_user")
        if not isinstance(user, dict) or user.get("mid") in (None, ""):
            return None

        try:
            return PlatformIdentity(
                uid=user["mid"],
                display_name=user.get("name") or None,
                avatar=user.get("avatar") or None,
                platform=self.platform,
            )
        except ValidationError as e:
            raise ReconciliationFailure("Malformed platform link status") from e

    async def fetch_user_profile(self) -> UserProfile:
        data = await self._call(
            "GET",
            self.PROFILE_PATH,
            ReconciliationFailure,
            "Failed to fetch user profile",
            retry=True,
        )
        try:
            return UserProfile.model_validate(data)
        except ValidationError as e:
            raise ReconciliationFailure("Malformed user profile") from e

    async def fetch_vip_status(self) -> VIPStatus:
        data = await self._call(
            "GET",
            self.VIP_STATUS_PATH,
            ReconciliationFailure,
            "Failed to fetch VIP status",
            retry=True,
        )
        try:
            return VIPStatus.model_validate(data or {})
        except ValidationError as e:
            raise ReconciliationFailure("Malformed VIP status") from e

    async def notify_logout(self) -> None:
        await self._call(
            "POST",
            self.LOGOUT_PATH,
            LogoutNotifyFailure,
            "Logout notification failed",
        )
