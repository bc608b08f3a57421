"""
Outbound notifications.

Notifications are fire-and-forget: a failed send is logged and reported as
False, never raised to the caller.
"""

import html
import logging
from datetime import datetime
from decimal import Decimal

from spot_alert.clients.base import NotificationSender

logger = logging.getLogger(__name__)


class BestEffortNotifier:
    """Wraps a NotificationSender so delivery failures never propagate."""

    def __init__(self, sender: NotificationSender):
        self.sender = sender

    def notify(self, to: str, subject: str, html_body: str) -> bool:
        """Send a message, swallowing and logging any failure.

        Returns:
            True if the sender accepted the message, False otherwise
        """
        try:
            self.sender.send(to, subject, html_body)
        except Exception as e:
            logger.warning("Notification to %s failed (%s): %s", to, subject, e)
            logger.debug("Notification failure details", exc_info=True)
            return False
        return True


def render_alert_body(key: str, when: datetime) -> str:
    """HTML body of the unknown-face alert."""
    readable = when.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    return (
        f"🚨 Unknown face detected at {html.escape(readable)}"
        f"<br/><br/>Image key: {html.escape(key)}"
    )


def render_topup_body(plan: str, total: Decimal, ceiling: Decimal) -> str:
    """HTML body of the monthly top-up notice."""
    return (
        f"<p>Hi, your monthly alert usage (${total:.3f}) exceeded your "
        f"{html.escape(plan)} plan limit (${ceiling:.2f}).</p>"
        "<p>Please top up your account to continue receiving all alerts.</p>"
    )
