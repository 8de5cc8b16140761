"""Cost adjustment schemas"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator


class CostAdjustmentRequest(BaseModel):
    final_cost: Decimal
    reason: str

    @field_validator("final_cost")
    @classmethod
    def validate_cost(cls, v):
        if v <= 0:
            raise ValueError("Final cost must be greater than zero")
        return v

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError("A reason is required for a cost adjustment")
        return v.strip()


class CostAdjustmentSummary(BaseModel):
    job_id: int
    status: str  # none, pending, approved, declined
    original_cost: Optional[Decimal] = None
    proposed_cost: Optional[Decimal] = None
    final_cost: Optional[Decimal] = None
    reason: Optional[str] = None
    currency: str
    repair_cost: Optional[Decimal] = None
    service_fee: Optional[Decimal] = None
    total: Optional[Decimal] = None
