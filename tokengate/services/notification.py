"""Notification boundary for out-of-band token links.

Delivery is fire-and-forget: a failed send is logged and never raised
into the request that issued the token.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send_reset_password_link(self, email: str, token: str) -> None: ...

    async def send_verification_link(self, email: str, token: str) -> None: ...


class LoggingNotifier:
    """Default notifier: logs that a link was issued and keeps nothing.

    The token itself is never written to the log.
    """

    async def send_reset_password_link(self, email: str, token: str) -> None:
        logger.info(f"Reset password link issued for {email}")

    async def send_verification_link(self, email: str, token: str) -> None:
        logger.info(f"Verification link issued for {email}")


_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    return _notifier


def set_notifier(notifier: Notifier) -> None:
    """Replace the process-wide notifier (e.g. with a real mail client)."""
    global _notifier
    _notifier = notifier
