# =============================================================================
# Sentry Error Tracking Integration
# =============================================================================
#
# Setup:
#   1. Create a Python project at sentry.io
#   2. Copy DSN to .env: SENTRY_DSN=https://...@sentry.io/...
#
# Usage:
#   init_sentry() is called by the local API lifespan and by the CLI.
#   Without a DSN every helper here is a no-op; callers log the error themselves.
#
# =============================================================================

import logging

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from accountlink.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Keys scrubbed from anything we attach to an event
_SENSITIVE_KEYS = ("authorization", "cookie", "token", "admin_token")


def init_sentry(settings: Settings | None = None) -> bool:
    """
    Initialize Sentry error tracking.

    Returns True if initialized, False if skipped.
    """
    settings = settings or get_settings()

    if not settings.sentry_dsn:
        logger.info("SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        integrations=[
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        send_default_pii=False,
        before_send=_filter_events,
    )

    logger.info(f"Sentry initialized for {settings.environment}")
    return True


def _filter_events(event: dict, hint: dict) -> dict | None:
    """Scrub credentials before anything leaves the process."""
    if "request" in event:
        headers = event["request"].get("headers", {})
        for key in list(headers.keys()):
            if key.lower() in _SENSITIVE_KEYS:
                headers[key] = "[Filtered]"

    extra = event.get("extra", {})
    for key in list(extra.keys()):
        if key.lower() in _SENSITIVE_KEYS:
            extra[key] = "[Filtered]"

    return event


def capture_exception(error: BaseException, **context) -> str | None:
    """
    Capture an exception to Sentry.

    Returns the event ID if captured, None otherwise.
    """
    if not sentry_sdk.is_initialized():
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in context.items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(error)


def set_user(user_id: str | None, **extra) -> None:
    """Set (or clear, with None) the user attached to error reports."""
    if not sentry_sdk.is_initialized():
        return
    if user_id is None:
        sentry_sdk.set_user(None)
        return
    sentry_sdk.set_user({"id": user_id, **extra})
