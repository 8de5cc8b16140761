"""
Courier adapter contract.

Each courier integration translates between its own API and the internal
delivery vocabulary: booking requests go out through `quote`/`book`/`cancel`,
webhooks come back through `verify_signature` and `parse_webhook` as a
normalized CourierEvent.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import httpx

from ....config import COURIER_TIMEOUT_SECONDS
from ....enums import DeliveryStatus
from ....errors import UpstreamProviderError, ValidationError
from ....shared.money import to_decimal
from ....webhook_security import verify_hex_signature

logger = logging.getLogger(__name__)

# Parcel weight (kg) declared for each package size
PACKAGE_WEIGHTS = {"small": 5, "medium": 10, "large": 15}


@dataclass
class Party:
    """One end of a courier leg"""

    name: str
    phone: str
    address: str
    email: Optional[str] = None


@dataclass
class CourierBooking:
    """Everything a courier needs to move one appliance"""

    reference: str
    pickup: Party
    dropoff: Party
    description: str
    package_size: str = "medium"
    scheduled_pickup_time: Optional[datetime] = None
    currency: str = "NGN"
    notes: Optional[str] = None

    @property
    def weight(self) -> int:
        return PACKAGE_WEIGHTS.get(self.package_size, PACKAGE_WEIGHTS["medium"])


@dataclass
class CourierQuote:
    amount: Decimal
    currency: str
    carrier: Optional[str] = None
    rate_id: Optional[str] = None
    estimated_duration: Optional[str] = None


@dataclass
class CourierBookingResult:
    provider_order_id: str
    cost: Decimal
    currency: str
    tracking_url: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None
    raw: dict = field(default_factory=dict)


@dataclass
class CourierEvent:
    """A courier webhook normalized to internal terms"""

    provider_order_id: str
    provider_status: str
    status: DeliveryStatus
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    vehicle_details: Optional[str] = None
    location: Optional[dict] = None
    actual_cost: Optional[Decimal] = None
    notes: Optional[str] = None


def parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return to_decimal(value)
    except (ArithmeticError, ValueError, TypeError):
        logger.warning(f"⚠️ Ignoring unparseable courier amount: {value!r}")
        return None


class CourierAdapter(ABC):
    """Base class for courier integrations"""

    name = ""
    display_name = ""
    signature_header = ""
    status_map: dict[str, DeliveryStatus] = {}
    # Couriers whose drivers collect and confirm cash on delivery
    driver_confirms_cash = False

    def __init__(
        self,
        base_url: str,
        webhook_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = COURIER_TIMEOUT_SECONDS,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.webhook_secret = webhook_secret
        self.transport = transport
        self.timeout = timeout

    def auth_headers(self) -> dict:
        return {}

    def map_status(self, provider_status: Optional[str]) -> DeliveryStatus:
        """Translate a courier status string; unknown values fall back to pending"""
        key = (provider_status or "").strip().lower()
        status = self.status_map.get(key)
        if status is None:
            logger.warning(f"⚠️ Unmapped {self.display_name} status '{provider_status}' - treating as pending")
            return DeliveryStatus.PENDING
        return status

    def verify_signature(self, raw_body: bytes, headers) -> None:
        verify_hex_signature(self.display_name, self.webhook_secret, raw_body, headers.get(self.signature_header))

    async def request(self, step: str, method: str, path: str, payload: Optional[dict] = None) -> dict:
        """
        Call the courier API for one booking step.

        Any transport failure, timeout or non-2xx response is raised as an
        UpstreamProviderError naming the step; the raw response is only logged.
        """
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.request(method, url, json=payload, headers=self.auth_headers())
        except httpx.TimeoutException as e:
            logger.error(f"❌ {self.display_name} {step} timed out: {e}")
            raise UpstreamProviderError(self.display_name, step, kind="timeout") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ {self.display_name} {step} failed: {e}")
            raise UpstreamProviderError(self.display_name, step) from e

        if response.status_code >= 400:
            logger.error(
                f"❌ {self.display_name} {step} returned HTTP {response.status_code}: {response.text[:500]}"
            )
            raise UpstreamProviderError.from_status(self.display_name, step, response.status_code)

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"❌ {self.display_name} {step} returned invalid JSON: {response.text[:200]}")
            raise UpstreamProviderError(self.display_name, step) from e

    @abstractmethod
    async def quote(self, booking: CourierBooking) -> CourierQuote:
        ...

    @abstractmethod
    async def book(self, booking: CourierBooking) -> CourierBookingResult:
        ...

    @abstractmethod
    async def cancel(self, provider_order_id: str, reason: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def parse_webhook(self, payload: dict) -> CourierEvent:
        ...


class StepwiseCourierAdapter(CourierAdapter):
    """
    Couriers that book through a sequence of dependent calls:
    origin address, destination address, parcel, shipment, rates, then
    arranging pickup at the cheapest rate. A failure at any step aborts the
    booking before anything is persisted.
    """

    @abstractmethod
    async def create_address(self, step: str, party: Party) -> str:
        ...

    @abstractmethod
    async def create_parcel(self, booking: CourierBooking) -> str:
        ...

    @abstractmethod
    async def create_shipment(self, origin_id: str, destination_id: str, parcel_id: str) -> str:
        ...

    @abstractmethod
    async def get_rates(self, shipment_id: str) -> list[CourierQuote]:
        ...

    @abstractmethod
    async def arrange_pickup(
        self, shipment_id: str, rate: CourierQuote, booking: CourierBooking
    ) -> CourierBookingResult:
        ...

    async def _prepare_shipment(self, booking: CourierBooking) -> tuple[str, CourierQuote]:
        origin_id = await self.create_address("create_origin_address", booking.pickup)
        destination_id = await self.create_address("create_destination_address", booking.dropoff)
        parcel_id = await self.create_parcel(booking)
        shipment_id = await self.create_shipment(origin_id, destination_id, parcel_id)

        rates = await self.get_rates(shipment_id)
        if not rates:
            logger.error(f"❌ {self.display_name} returned no rates for shipment {shipment_id}")
            raise UpstreamProviderError(self.display_name, "get_rates", kind="not_found")
        return shipment_id, min(rates, key=lambda rate: rate.amount)

    async def quote(self, booking: CourierBooking) -> CourierQuote:
        _, rate = await self._prepare_shipment(booking)
        return rate

    async def book(self, booking: CourierBooking) -> CourierBookingResult:
        shipment_id, rate = await self._prepare_shipment(booking)
        logger.info(f"📦 {self.display_name} lowest rate {rate.amount} {rate.currency} ({rate.carrier})")
        return await self.arrange_pickup(shipment_id, rate, booking)


def require_field(provider: str, value: Any, label: str) -> Any:
    if value in (None, ""):
        raise ValidationError(f"{provider} webhook is missing {label}")
    return value
