"""
accountlink - link creator-platform accounts to one identity.

Two pieces do the real work:
- binding: the QR-code handshake (issue, poll, count down, settle)
- auth: reconciling the admin session with the platform identity and VIP tier
"""

__version__ = "0.1.0"
