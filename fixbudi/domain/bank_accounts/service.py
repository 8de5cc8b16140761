"""Bank account service - Whitelisting and the change lock for payout accounts"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import BANK_ACCOUNT_LOCK_DAYS
from ...errors import NotFoundError, StateConflictError, ValidationError
from ...models import User
from ...models_payment import BankAccount
from ...permissions import is_admin, require_center_staff
from ...services.notification_service import NotificationDispatcher
from ...shared.encryption import encrypt_value, mask_account_number
from ..jobs.repository import JobRepository
from .guard import days_until_editable, names_match
from .repository import BankAccountRepository

logger = logging.getLogger(__name__)


class BankAccountService:
    """Submit and read repair center payout accounts"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        lock_days: int = BANK_ACCOUNT_LOCK_DAYS,
    ):
        self.db = db
        self.repo = BankAccountRepository()
        self.notifier = notifier or NotificationDispatcher()
        self.lock_days = lock_days

    def get_active_account(self, center_id: int) -> Optional[BankAccount]:
        return self.repo.get_active_account(self.db, center_id)

    def describe(self, center_id: int, user: User, now: Optional[datetime] = None) -> dict:
        """Masked account details for the center dashboard"""
        if not is_admin(self.db, user):
            require_center_staff(self.db, user, center_id)

        now = now or datetime.utcnow()
        account = self.get_active_account(center_id)
        if not account:
            return {"repair_center_id": center_id, "has_account": False, "days_until_editable": 0}

        return {
            "repair_center_id": center_id,
            "has_account": True,
            "bank_name": account.bank_name,
            "account_name": account.account_name,
            "account_number": account.masked_account_number,
            "whitelisted_at": account.whitelisted_at,
            "last_updated_at": account.last_updated_at,
            "days_until_editable": days_until_editable(account.last_updated_at, now, self.lock_days),
        }

    async def submit(
        self,
        center_id: int,
        bank_name: str,
        account_number: str,
        account_name: str,
        user: User,
        now: Optional[datetime] = None,
    ) -> BankAccount:
        """Create or replace the center's whitelisted payout account"""
        require_center_staff(self.db, user, center_id)
        now = now or datetime.utcnow()

        center = JobRepository.get_center(self.db, center_id)
        if not center:
            raise NotFoundError("Repair center not found")

        bank_name = (bank_name or "").strip()
        account_number = (account_number or "").strip()
        account_name = (account_name or "").strip()
        if not bank_name or not account_number or not account_name:
            raise ValidationError("Bank name, account number and account name are required")
        if not account_number.isdigit():
            raise ValidationError("Account number must contain digits only")
        if not names_match(account_name, center.name):
            raise ValidationError("Account name must match your registered business name")

        account_values = {
            "bank_name": bank_name,
            "account_number": encrypt_value(account_number),
            "account_number_last4": account_number[-4:],
            "account_name": account_name,
            "whitelisted_at": now,
            "last_updated_at": now,
        }

        existing = self.get_active_account(center_id)
        if not existing:
            try:
                account = self.repo.create_account(
                    self.db, repair_center_id=center_id, is_active=True, **account_values
                )
                self.db.commit()
            except IntegrityError:
                # Another first submission for this center committed after our read
                self.db.rollback()
                logger.warning(f"⚠️ Concurrent first bank account rejected for repair center {center_id}")
                raise StateConflictError("Bank account was changed by another request") from None
            self.db.refresh(account)
            logger.info(f"✅ Bank account {account.id} whitelisted for repair center {center_id}")
        else:
            remaining = days_until_editable(existing.last_updated_at, now, self.lock_days)
            if remaining > 0:
                raise StateConflictError(
                    f"Bank account can only be changed after {self.lock_days} days. {remaining} days remaining."
                )

            # Re-check the lock at write time against the value we read
            result = self.db.execute(
                update(BankAccount)
                .where(
                    BankAccount.id == existing.id,
                    BankAccount.last_updated_at == existing.last_updated_at,
                    BankAccount.last_updated_at <= now - timedelta(days=self.lock_days),
                )
                .values(**account_values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                logger.warning(f"⚠️ Concurrent bank account change rejected for repair center {center_id}")
                raise StateConflictError("Bank account was changed by another request")

            self.db.commit()
            account = existing
            self.db.refresh(account)
            logger.info(f"✅ Bank account {account.id} replaced for repair center {center_id}")

        await self.notifier.notify(
            "bank_account_whitelisted",
            {
                "repair_center": center.name,
                "bank_name": account.bank_name,
                "account_number": mask_account_number(account_number),
                "account_name": account.account_name,
            },
            [center.email] if center.email else [],
        )
        return account
