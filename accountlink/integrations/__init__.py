"""
Integrations with the outside world.

- base: collaborator interfaces the core depends on
- backend: httpx implementation against the account backend
- sentry: error tracking
"""

from accountlink.integrations.base import AccountAPI, BindingAPI
from accountlink.integrations.backend import BackendClient

__all__ = [
    "AccountAPI",
    "BindingAPI",
    "BackendClient",
]
