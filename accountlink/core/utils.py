"""
Shared utility functions for accountlink.
"""

from __future__ import annotations

import inspect
import uuid
from datetime import datetime, timezone
from typing import Any


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix (e.g., "bind", "evt")

    Returns:
        A unique ID like "bind_a1b2c3d4e5f6"
    """
    uid = str(uuid.uuid4())[:12]
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes from the wire as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def call_maybe_async(func, *args: Any) -> Any:
    """Call a callback that may be a plain function or a coroutine function."""
    result = func(*args)
    if inspect.isawaitable(result):
        return await result
    return result
