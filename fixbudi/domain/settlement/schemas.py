"""Settlement schemas - Payouts, batch processing and repair payments"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator


class PayoutResponse(BaseModel):
    id: int
    repair_center_id: int
    repair_job_id: int
    payment_id: Optional[int] = None
    gross_amount: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    currency: str
    payout_status: str
    payout_method: Optional[str] = None
    payout_reference: Optional[str] = None
    payout_date: Optional[datetime] = None
    settlement_period: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BatchPayoutRequest(BaseModel):
    payout_ids: list[int]
    payout_method: str
    payout_reference: str
    notes: Optional[str] = None

    @field_validator("payout_ids")
    @classmethod
    def validate_ids(cls, v):
        if not v:
            raise ValueError("No payout IDs provided")
        return v

    @field_validator("payout_method", "payout_reference")
    @classmethod
    def validate_required(cls, v):
        if not v or not v.strip():
            raise ValueError("Payout method and reference are required")
        return v.strip()


class ProcessPayoutRequest(BaseModel):
    payout_reference: str
    payout_method: str = "bank_transfer"
    notes: Optional[str] = None


class FailedPayout(BaseModel):
    id: int
    error: str


class BatchPayoutResult(BaseModel):
    """Per-item outcome of a payout batch; partial failure is reported, never raised"""

    success: bool = True
    message: str = "Batch processing completed"
    total: int
    successful_count: int
    failed_count: int
    successful: list[int]
    failed: list[FailedPayout]


class EarningsSummary(BaseModel):
    repair_center_id: int
    currency: str
    total_jobs: int
    gross_earnings: Decimal
    total_commission: Decimal
    net_earnings: Decimal
    paid_out: Decimal
    pending_payout: Decimal


class PaymentCheckoutRequest(BaseModel):
    provider: str = "paystack"

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v):
        v = (v or "").strip().lower()
        if v not in ("paystack", "stripe"):
            raise ValueError("provider must be 'paystack' or 'stripe'")
        return v


class PaymentCheckoutResponse(BaseModel):
    payment_id: int
    provider: str
    reference: str
    checkout_url: str
    amount: Decimal
    currency: str
