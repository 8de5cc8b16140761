"""
Unified Notification Service
Fire-and-forget delivery of workflow events to customers, repair centers and admins.
A failed notification never fails the operation that triggered it.
"""

import logging
from typing import Iterable, Optional

from ..email_service import render_basic_html, send_email

logger = logging.getLogger(__name__)

# Subject and headline per workflow event
EVENT_SUBJECTS = {
    "quote_provided": "Your repair quote is ready",
    "quote_response": "Customer responded to your quote",
    "repair_completed": "Your appliance repair is complete",
    "cost_adjustment_requested": "Repair cost adjustment needs your approval",
    "cost_adjustment_resolved": "Customer responded to your cost adjustment",
    "completion_confirmation": "Customer confirmation received",
    "job_completed": "Repair job completed",
    "delivery_booked": "Courier booked for your appliance",
    "delivery_cancelled": "Courier booking cancelled",
    "payout_processed": "Your payout has been processed",
    "bank_account_whitelisted": "Payout bank account updated",
    "job_cancelled": "Repair job cancelled",
}


class NotificationDispatcher:
    """Sends workflow notifications by email; every failure is logged and swallowed"""

    def __init__(self, sender=None):
        self.sender = sender or send_email

    async def notify(self, event_type: str, payload: dict, recipients: Iterable[Optional[str]]) -> dict:
        result = {"sent": [], "failed": []}
        addresses = [r for r in recipients if r]
        if not addresses:
            logger.debug(f"⚠️ No recipients for {event_type} notification")
            return result

        subject = EVENT_SUBJECTS.get(event_type, "FixBudi update")
        lines = [f"{key.replace('_', ' ').capitalize()}: {value}" for key, value in payload.items() if value is not None]

        for address in addresses:
            try:
                logger.info(f"📧 Sending {event_type} notification to {address}")
                await self.sender(to=address, subject=subject, html_content=render_basic_html(subject, lines))
                result["sent"].append(address)
            except Exception as e:
                result["failed"].append(address)
                logger.error(f"❌ Failed to send {event_type} notification to {address}: {e}")

        return result


def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()
