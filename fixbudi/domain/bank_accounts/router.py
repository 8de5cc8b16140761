"""Bank account router - Repair center payout account management"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationDispatcher, get_notification_dispatcher
from .schemas import BankAccountResponse, BankAccountSubmit
from .service import BankAccountService

router = APIRouter(prefix="/centers/{center_id}/bank-account", tags=["Bank Accounts"])


def get_bank_account_service(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BankAccountService:
    """Dependency injection for BankAccountService"""
    return BankAccountService(db, notifier=notifier)


@router.get("", response_model=BankAccountResponse)
async def get_bank_account(
    center_id: int,
    current_user: User = Depends(get_current_user),
    service: BankAccountService = Depends(get_bank_account_service),
):
    return service.describe(center_id, current_user)


@router.put("", response_model=BankAccountResponse)
async def submit_bank_account(
    center_id: int,
    data: BankAccountSubmit,
    current_user: User = Depends(get_current_user),
    service: BankAccountService = Depends(get_bank_account_service),
):
    """Add or replace the whitelisted payout account (locked for two weeks after each change)"""
    await service.submit(center_id, data.bank_name, data.account_number, data.account_name, current_user)
    return service.describe(center_id, current_user)
