"""Delivery schemas - Courier quotes, bookings and tracking"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from .couriers import COURIERS

Leg = Literal["pickup", "return"]
PackageSize = Literal["small", "medium", "large"]


def _validate_provider(v: str) -> str:
    provider = (v or "").strip().lower()
    if provider not in COURIERS:
        raise ValueError(f"Unsupported delivery provider. Use one of: {', '.join(COURIERS)}")
    return provider


class DeliveryQuoteRequest(BaseModel):
    repair_job_id: int
    delivery_type: Leg
    provider: str
    package_size: PackageSize = "medium"

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v):
        return _validate_provider(v)


class DeliveryQuoteResponse(BaseModel):
    provider: str
    delivery_type: str
    delivery_cost: Decimal
    app_commission: Decimal
    commission_rate: Decimal
    total_customer_pays: Decimal  # Cash to the rider; the commission is carved out of it
    currency: str
    carrier: Optional[str] = None
    estimated_duration: Optional[str] = None
    quote_expires_at: datetime


class DeliveryCreate(BaseModel):
    repair_job_id: int
    delivery_type: Leg
    provider: str
    package_size: PackageSize = "medium"
    scheduled_pickup_time: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v):
        return _validate_provider(v)


class DeliveryCancelRequest(BaseModel):
    reason: Optional[str] = None


class DeliveryStatusHistoryResponse(BaseModel):
    id: int
    status: str
    provider_status: Optional[str] = None
    location: Optional[dict] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeliveryResponse(BaseModel):
    id: int
    repair_job_id: int
    delivery_type: str
    provider: str
    provider_order_id: str
    tracking_url: Optional[str] = None
    pickup_address: str
    pickup_contact_name: Optional[str] = None
    pickup_contact_phone: Optional[str] = None
    delivery_address: str
    delivery_contact_name: Optional[str] = None
    delivery_contact_phone: Optional[str] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    app_delivery_commission: Optional[Decimal] = None
    currency: str
    delivery_status: str
    cash_payment_status: str
    cash_payment_confirmed_at: Optional[datetime] = None
    cash_payment_confirmed_by: Optional[str] = None
    scheduled_pickup_time: Optional[datetime] = None
    actual_pickup_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    vehicle_details: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    status_history: list[DeliveryStatusHistoryResponse] = []

    class Config:
        from_attributes = True
