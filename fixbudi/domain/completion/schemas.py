"""Completion confirmation schemas"""

from typing import Literal, Optional

from pydantic import BaseModel


class ConfirmationRequest(BaseModel):
    confirmation_type: Literal["device_returned", "repair_satisfaction"]
    satisfaction_rating: Optional[int] = None
    satisfaction_feedback: Optional[str] = None


class ConfirmationResponse(BaseModel):
    success: bool
    message: str
    job_completed: bool
