"""Bank account schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class BankAccountSubmit(BaseModel):
    bank_name: str
    account_number: str
    account_name: str

    @field_validator("account_number")
    @classmethod
    def validate_account_number(cls, v):
        v = v.strip().replace(" ", "")
        if not v.isdigit():
            raise ValueError("Account number must contain digits only")
        if not 6 <= len(v) <= 20:
            raise ValueError("Account number must be between 6 and 20 digits")
        return v


class BankAccountResponse(BaseModel):
    repair_center_id: int
    has_account: bool
    bank_name: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None  # Masked
    whitelisted_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    days_until_editable: int = 0
