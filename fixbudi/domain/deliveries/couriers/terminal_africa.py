"""
Terminal Africa Integration.

Shipments are booked through the address → parcel → shipment → rates →
arrange flow. Drivers do not report cash collection, so a delivered return
leg waits for the customer or repair center to confirm the cash payment.

API Docs: https://docs.terminal.africa/
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ....config import TERMINAL_AFRICA_API_KEY, TERMINAL_AFRICA_API_URL, TERMINAL_AFRICA_WEBHOOK_SECRET
from ....enums import DeliveryStatus
from ....errors import UpstreamProviderError
from .base import (
    CourierBooking,
    CourierBookingResult,
    CourierEvent,
    CourierQuote,
    Party,
    StepwiseCourierAdapter,
    parse_amount,
    require_field,
)

logger = logging.getLogger(__name__)


class TerminalAfricaAdapter(StepwiseCourierAdapter):
    name = "terminal_africa"
    display_name = "Terminal Africa"
    signature_header = "x-terminal-signature"
    driver_confirms_cash = False
    status_map = {
        "confirmed": DeliveryStatus.PENDING,
        "picked-up": DeliveryStatus.PICKED_UP,
        "in-transit": DeliveryStatus.IN_TRANSIT,
        "out-for-delivery": DeliveryStatus.IN_TRANSIT,
        "delivered": DeliveryStatus.DELIVERED,
        "cancelled": DeliveryStatus.CANCELLED,
        "failed": DeliveryStatus.FAILED,
        "returned": DeliveryStatus.RETURNED,
    }

    def __init__(
        self,
        api_key: Optional[str] = TERMINAL_AFRICA_API_KEY,
        base_url: str = TERMINAL_AFRICA_API_URL,
        webhook_secret: Optional[str] = TERMINAL_AFRICA_WEBHOOK_SECRET,
        **kwargs,
    ):
        super().__init__(base_url, webhook_secret=webhook_secret, **kwargs)
        self.api_key = api_key

    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _check_configured(self, step: str) -> None:
        if not self.api_key:
            logger.error("❌ TERMINAL_AFRICA_API_KEY not configured")
            raise UpstreamProviderError(self.display_name, step, kind="unauthorized")

    @staticmethod
    def _data(body: dict) -> dict:
        return body.get("data") or {}

    async def create_address(self, step: str, party: Party) -> str:
        self._check_configured(step)
        body = await self.request(
            step,
            "POST",
            "/addresses",
            {"name": party.name, "phone": party.phone, "email": party.email, "line1": party.address, "country": "NG"},
        )
        address_id = self._data(body).get("address_id")
        if not address_id:
            logger.error(f"❌ Terminal Africa {step} returned no address_id: {body}")
            raise UpstreamProviderError(self.display_name, step)
        return address_id

    async def create_parcel(self, booking: CourierBooking) -> str:
        step = "create_parcel"
        body = await self.request(
            step,
            "POST",
            "/parcels",
            {
                "description": booking.description,
                "items": [
                    {
                        "description": booking.description,
                        "name": booking.description,
                        "type": "parcel",
                        "currency": booking.currency,
                        "value": 0,
                        "quantity": 1,
                        "weight": booking.weight,
                    }
                ],
                "weight_unit": "kg",
                "weight": booking.weight,
                "packaging": "box",
            },
        )
        parcel_id = self._data(body).get("parcel_id")
        if not parcel_id:
            logger.error(f"❌ Terminal Africa {step} returned no parcel_id: {body}")
            raise UpstreamProviderError(self.display_name, step)
        return parcel_id

    async def create_shipment(self, origin_id: str, destination_id: str, parcel_id: str) -> str:
        step = "create_shipment"
        body = await self.request(
            step,
            "POST",
            "/shipments",
            {"address_from": origin_id, "address_to": destination_id, "parcel": parcel_id},
        )
        shipment_id = self._data(body).get("shipment_id")
        if not shipment_id:
            logger.error(f"❌ Terminal Africa {step} returned no shipment_id: {body}")
            raise UpstreamProviderError(self.display_name, step)
        return shipment_id

    async def get_rates(self, shipment_id: str) -> list[CourierQuote]:
        body = await self.request("get_rates", "POST", "/rates/shipment", {"shipment_id": shipment_id})
        rates = []
        for rate in body.get("data") or []:
            amount = parse_amount(rate.get("amount"))
            if amount is None:
                continue
            rates.append(
                CourierQuote(
                    amount=amount,
                    currency=rate.get("currency") or "NGN",
                    carrier=(rate.get("carrier") or {}).get("name") or rate.get("carrier_name"),
                    rate_id=rate.get("rate_id"),
                    estimated_duration=rate.get("duration") or rate.get("delivery_time"),
                )
            )
        return rates

    async def arrange_pickup(
        self, shipment_id: str, rate: CourierQuote, booking: CourierBooking
    ) -> CourierBookingResult:
        pickup_at = booking.scheduled_pickup_time or (datetime.utcnow() + timedelta(days=1))
        body = await self.request(
            "arrange_pickup",
            "POST",
            f"/shipments/{shipment_id}/arrange",
            {"shipment_id": shipment_id, "rate_id": rate.rate_id, "pickup_date": pickup_at.date().isoformat()},
        )
        data = self._data(body)
        logger.info(f"✅ Terminal Africa shipment {shipment_id} arranged with {rate.carrier}")
        return CourierBookingResult(
            provider_order_id=shipment_id,
            cost=rate.amount,
            currency=rate.currency,
            tracking_url=data.get("tracking_url"),
            carrier=rate.carrier,
            raw=body,
        )

    async def cancel(self, provider_order_id: str, reason: Optional[str] = None) -> None:
        self._check_configured("cancel_shipment")
        await self.request(
            "cancel_shipment",
            "POST",
            f"/shipments/{provider_order_id}/cancel",
            {"reason": reason or "Cancelled by customer"},
        )
        logger.info(f"✅ Terminal Africa shipment {provider_order_id} cancelled")

    def parse_webhook(self, payload: dict) -> CourierEvent:
        data = payload.get("data") or {}
        tracking = data.get("tracking") or {}
        shipment_id = require_field(self.display_name, data.get("shipment_id") or payload.get("shipment_id"), "shipment_id")
        provider_status = require_field(self.display_name, data.get("status") or payload.get("status"), "status")
        driver = data.get("driver") or tracking.get("driver") or {}

        return CourierEvent(
            provider_order_id=str(shipment_id),
            provider_status=provider_status,
            status=self.map_status(provider_status),
            driver_name=driver.get("name"),
            driver_phone=driver.get("phone"),
            location=data.get("location") or tracking.get("location"),
            actual_cost=parse_amount(data.get("amount")),
            notes=f"Status updated by Terminal Africa: {provider_status}",
        )
