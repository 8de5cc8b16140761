"""
SendStack Integration.

Same-day dispatch booked in a single call. Riders collect cash on delivery
and report it, so a delivered return leg confirms the cash payment directly.
"""

import logging
from datetime import datetime
from typing import Optional

from ....config import SENDSTACK_API_URL, SENDSTACK_APP_ID, SENDSTACK_APP_SECRET, SENDSTACK_WEBHOOK_SECRET
from ....enums import DeliveryStatus
from ....errors import UpstreamProviderError
from .base import (
    CourierAdapter,
    CourierBooking,
    CourierBookingResult,
    CourierEvent,
    CourierQuote,
    parse_amount,
    require_field,
)

logger = logging.getLogger(__name__)


class SendStackAdapter(CourierAdapter):
    name = "sendstack"
    display_name = "SendStack"
    signature_header = "x-sendstack-signature"
    driver_confirms_cash = True
    status_map = {
        "pending": DeliveryStatus.PENDING,
        "assigned": DeliveryStatus.ASSIGNED,
        "accepted": DeliveryStatus.ASSIGNED,
        "en_route_to_pickup": DeliveryStatus.DRIVER_ON_WAY,
        "arrived_at_pickup": DeliveryStatus.DRIVER_ARRIVED,
        "picked_up": DeliveryStatus.PICKED_UP,
        "in_transit": DeliveryStatus.IN_TRANSIT,
        "arrived_at_destination": DeliveryStatus.DRIVER_ARRIVED,
        "delivered": DeliveryStatus.DELIVERED,
        "failed": DeliveryStatus.FAILED,
        "cancelled": DeliveryStatus.CANCELLED,
    }

    def __init__(
        self,
        app_id: Optional[str] = SENDSTACK_APP_ID,
        app_secret: Optional[str] = SENDSTACK_APP_SECRET,
        base_url: str = SENDSTACK_API_URL,
        webhook_secret: Optional[str] = SENDSTACK_WEBHOOK_SECRET,
        **kwargs,
    ):
        super().__init__(base_url, webhook_secret=webhook_secret, **kwargs)
        self.app_id = app_id
        self.app_secret = app_secret

    def auth_headers(self) -> dict:
        return {"app_id": self.app_id or "", "app_secret": self.app_secret or ""}

    def _check_configured(self, step: str) -> None:
        if not self.app_id or not self.app_secret:
            logger.error("❌ SENDSTACK_APP_ID / SENDSTACK_APP_SECRET not configured")
            raise UpstreamProviderError(self.display_name, step, kind="unauthorized")

    async def quote(self, booking: CourierBooking) -> CourierQuote:
        self._check_configured("get_quote")
        body = await self.request(
            "get_quote",
            "POST",
            "/quotes",
            {
                "pickup_address": booking.pickup.address,
                "delivery_address": booking.dropoff.address,
                "vehicle_type": "bike",
                "package_size": booking.package_size,
            },
        )
        amount = parse_amount(body.get("price") or body.get("estimated_cost"))
        if amount is None:
            logger.error(f"❌ SendStack quote returned no price: {body}")
            raise UpstreamProviderError(self.display_name, "get_quote")
        minutes = body.get("estimated_duration_minutes") or 60
        return CourierQuote(
            amount=amount,
            currency=body.get("currency") or booking.currency,
            carrier=self.display_name,
            estimated_duration=f"{minutes} minutes",
        )

    async def book(self, booking: CourierBooking) -> CourierBookingResult:
        self._check_configured("create_delivery")
        pickup_at = booking.scheduled_pickup_time or datetime.utcnow()
        body = await self.request(
            "create_delivery",
            "POST",
            "/deliveries",
            {
                "orderType": "PROCESSING",
                "bookingName": booking.pickup.name,
                "bookingPhone": booking.pickup.phone,
                "bookingEmail": booking.pickup.email,
                "pickup": {
                    "address": booking.pickup.address,
                    "pickupName": booking.pickup.name,
                    "pickupNumber": booking.pickup.phone,
                    "pickupDate": pickup_at.date().isoformat(),
                },
                "drops": [
                    {
                        "address": booking.dropoff.address,
                        "recipientName": booking.dropoff.name,
                        "recipientNumber": booking.dropoff.phone,
                        "notes": booking.notes or booking.description,
                    }
                ],
            },
        )

        order_id = body.get("id") or body.get("batchId")
        if not order_id:
            logger.error(f"❌ SendStack booking returned no order id: {body}")
            raise UpstreamProviderError(self.display_name, "create_delivery")

        cost = parse_amount(body.get("totalAmount"))
        if cost is None:
            raise UpstreamProviderError(self.display_name, "create_delivery")
        logger.info(f"✅ SendStack delivery {order_id} booked for {cost} {booking.currency}")
        return CourierBookingResult(
            provider_order_id=str(order_id),
            cost=cost,
            currency=booking.currency,
            tracking_url=body.get("trackingUrl"),
            carrier=self.display_name,
            raw=body,
        )

    async def cancel(self, provider_order_id: str, reason: Optional[str] = None) -> None:
        self._check_configured("cancel_delivery")
        await self.request(
            "cancel_delivery",
            "POST",
            f"/deliveries/{provider_order_id}/cancel",
            {"reason": reason or "Cancelled by customer"},
        )
        logger.info(f"✅ SendStack delivery {provider_order_id} cancelled")

    def parse_webhook(self, payload: dict) -> CourierEvent:
        order_id = require_field(self.display_name, payload.get("delivery_id") or payload.get("id"), "delivery_id")
        provider_status = require_field(self.display_name, payload.get("status"), "status")
        driver = payload.get("driver") or {}
        location = payload.get("location")

        return CourierEvent(
            provider_order_id=str(order_id),
            provider_status=provider_status,
            status=self.map_status(provider_status),
            driver_name=driver.get("name"),
            driver_phone=driver.get("phone"),
            vehicle_details=driver.get("vehicle_details"),
            location=location,
            actual_cost=parse_amount(
                payload.get("cost") or payload.get("final_cost") or payload.get("amount")
            ),
            notes=payload.get("notes") or f"Status updated by SendStack: {provider_status}",
        )
