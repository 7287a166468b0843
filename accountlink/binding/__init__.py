"""
QR-code account binding.
"""

from accountlink.binding.session import BindingSession, format_countdown
from accountlink.binding.coordinator import BindingCoordinator, BindingView

__all__ = [
    "BindingSession",
    "BindingCoordinator",
    "BindingView",
    "format_countdown",
]
