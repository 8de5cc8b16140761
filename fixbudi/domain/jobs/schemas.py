"""Repair job schemas - Pydantic models for validation"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ...enums import JobStatus

# Statuses repair center staff may set directly
STAFF_SETTABLE_STATUSES = {
    JobStatus.IN_REPAIR.value,
    JobStatus.REPAIR_COMPLETED.value,
    JobStatus.READY_FOR_RETURN.value,
    JobStatus.RETURNED.value,
}


class QuoteCreate(BaseModel):
    quoted_cost: Decimal
    notes: Optional[str] = None

    @field_validator("quoted_cost")
    @classmethod
    def validate_cost(cls, v):
        if v <= 0:
            raise ValueError("Quoted cost must be greater than zero")
        return v


class QuoteResponseRequest(BaseModel):
    response: Literal["accept", "negotiate", "reject"]
    notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str
    note: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in STAFF_SETTABLE_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(sorted(STAFF_SETTABLE_STATUSES))}")
        return v


class CancelJobRequest(BaseModel):
    reason: Optional[str] = None


class JobResponse(BaseModel):
    id: int
    user_id: int
    repair_center_id: int
    customer_name: str
    appliance_type: str
    appliance_brand: Optional[str] = None
    appliance_model: Optional[str] = None
    issue_description: str
    job_status: str
    quoted_cost: Optional[Decimal] = None
    quote_notes: Optional[str] = None
    final_cost: Optional[Decimal] = None
    proposed_final_cost: Optional[Decimal] = None
    cost_adjustment_approved: Optional[bool] = None
    currency: str
    device_returned_confirmed: bool
    repair_satisfaction_confirmed: bool
    satisfaction_rating: Optional[int] = None
    completion_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    id: int
    from_status: Optional[str] = None
    to_status: str
    cause: str
    actor_user_id: Optional[int] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
