"""
Settlement service

Turns completed repair jobs into payouts owed to repair centers and lets
admins release them in batches. Commission is computed once, when the payout
row is created, and never recalculated afterwards.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DEFAULT_CURRENCY, REPAIR_COMMISSION_RATE
from ...enums import PayoutStatus
from ...errors import NotFoundError, StateConflictError, ValidationError
from ...models import RepairJob, User
from ...models_payment import BankAccount, Payout
from ...permissions import is_admin, require_admin, require_center_staff
from ...services.notification_service import NotificationDispatcher
from ...shared.money import Amount, apply_rate, quantize
from ..bank_accounts.repository import BankAccountRepository
from ..jobs.repository import JobRepository
from .repository import SettlementRepository
from .schemas import BatchPayoutResult, FailedPayout

logger = logging.getLogger(__name__)


def calculate_settlement(
    gross: Amount, rate: Amount = REPAIR_COMMISSION_RATE, currency: Optional[str] = None
) -> tuple[Decimal, Decimal]:
    """
    Split a gross repair amount into (commission, net).

    The commission is rounded to the currency's minor unit and the net is the
    remainder, so commission + net always equals the gross exactly.
    """
    gross = quantize(gross, currency)
    if gross < 0:
        raise ValidationError("Gross amount cannot be negative")
    commission = apply_rate(gross, rate, currency)
    return commission, gross - commission


def settlement_period(moment: datetime) -> str:
    """ISO year-week label, e.g. 2024-W07"""
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


class SettlementService:
    """Service layer for payouts owed to repair centers"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        commission_rate: Decimal = REPAIR_COMMISSION_RATE,
    ):
        self.db = db
        self.repo = SettlementRepository()
        self.bank_accounts = BankAccountRepository()
        self.notifier = notifier or NotificationDispatcher()
        self.commission_rate = commission_rate

    def create_payout_for_job(self, job: RepairJob, now: Optional[datetime] = None) -> Payout:
        """
        Record the payout for a completed job. Idempotent per job.

        Runs inside the caller's transaction; the caller commits.
        """
        existing = self.repo.get_payout_by_job(self.db, job.id)
        if existing:
            logger.info(f"ℹ️ Payout {existing.id} already exists for job {job.id}")
            return existing

        gross = job.settlement_cost
        if gross is None:
            raise StateConflictError(f"Job {job.id} has no agreed cost to settle", job.job_status)

        commission, net = calculate_settlement(gross, self.commission_rate, job.currency)
        payment = JobRepository.get_latest_completed_payment(self.db, job.id)
        now = now or datetime.utcnow()

        payout = self.repo.create_payout(
            self.db,
            repair_center_id=job.repair_center_id,
            repair_job_id=job.id,
            payment_id=payment.id if payment else None,
            gross_amount=quantize(gross, job.currency),
            commission_amount=commission,
            net_amount=net,
            currency=job.currency,
            payout_status=PayoutStatus.PENDING.value,
            settlement_period=settlement_period(now),
        )
        logger.info(
            f"💰 Payout {payout.id} created for job {job.id}: gross={gross} commission={commission} net={net} {job.currency}"
        )
        return payout

    def _complete_payout(
        self,
        payout_id: int,
        method: str,
        reference: str,
        notes: Optional[str],
        now: datetime,
    ) -> tuple[Payout, BankAccount]:
        """Move one pending payout to completed in its own transaction"""
        payout = self.repo.get_payout(self.db, payout_id)
        if not payout:
            raise NotFoundError(f"Payout {payout_id} not found")
        if payout.payout_status != PayoutStatus.PENDING.value:
            raise StateConflictError("Payout is not pending", payout.payout_status)

        account = self.bank_accounts.get_active_account(self.db, payout.repair_center_id)
        if not account or not account.whitelisted_at:
            raise StateConflictError("Repair center has no whitelisted bank account")

        result = self.db.execute(
            update(Payout)
            .where(Payout.id == payout.id, Payout.payout_status == PayoutStatus.PENDING.value)
            .values(
                payout_status=PayoutStatus.COMPLETED.value,
                payout_method=method,
                payout_reference=reference,
                payout_date=now,
                notes=notes or f"Batch processed on {now.date().isoformat()}",
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StateConflictError("Payout was processed by another request")

        self.db.commit()
        self.db.refresh(payout)
        logger.info(f"✅ Payout {payout.id} completed with reference {reference}")
        return payout, account

    async def _notify_payout(self, payout: Payout, account: BankAccount) -> None:
        center = JobRepository.get_center(self.db, payout.repair_center_id)
        await self.notifier.notify(
            "payout_processed",
            {
                "payout_amount": f"{payout.net_amount} {payout.currency}",
                "payout_reference": payout.payout_reference,
                "payout_method": payout.payout_method,
                "settlement_period": payout.settlement_period,
                "bank_name": account.bank_name,
                "account_number": account.masked_account_number,
                "account_name": account.account_name,
            },
            [center.email] if center and center.email else [],
        )

    async def process_batch(
        self,
        payout_ids: Iterable[int],
        method: str,
        reference: str,
        notes: Optional[str],
        user: User,
        now: Optional[datetime] = None,
    ) -> BatchPayoutResult:
        """
        Release a batch of pending payouts.

        Each payout is completed in its own transaction. Payouts that cannot be
        processed stay pending and are reported in `failed`.
        """
        require_admin(self.db, user)

        ids = list(dict.fromkeys(payout_ids or []))
        if not ids:
            raise ValidationError("No payout IDs provided")
        if not method or not method.strip() or not reference or not reference.strip():
            raise ValidationError("Payout method and reference are required")

        now = now or datetime.utcnow()
        successful: list[int] = []
        failed: list[FailedPayout] = []
        processed = []

        logger.info(f"💰 Processing {len(ids)} payouts in batch {reference}")
        for payout_id in ids:
            try:
                payout, account = self._complete_payout(
                    payout_id, method.strip(), f"{reference.strip()}-{payout_id}", notes, now
                )
                successful.append(payout_id)
                processed.append((payout, account))
            except (NotFoundError, StateConflictError) as e:
                self.db.rollback()
                logger.warning(f"⚠️ Payout {payout_id} not processed: {e.detail}")
                failed.append(FailedPayout(id=payout_id, error=e.detail))
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Database error processing payout {payout_id}: {e}")
                failed.append(FailedPayout(id=payout_id, error="Database error while processing payout"))

        for payout, account in processed:
            await self._notify_payout(payout, account)

        logger.info(
            f"✅ Batch {reference} completed: {len(successful)} successful, {len(failed)} failed"
        )
        return BatchPayoutResult(
            total=len(ids),
            successful_count=len(successful),
            failed_count=len(failed),
            successful=successful,
            failed=failed,
        )

    async def process_payout(
        self,
        payout_id: int,
        reference: str,
        method: str,
        notes: Optional[str],
        user: User,
        now: Optional[datetime] = None,
    ) -> Payout:
        """Release a single payout; raises when it cannot be processed"""
        require_admin(self.db, user)
        if not reference or not reference.strip():
            raise ValidationError("Payout reference is required")

        try:
            payout, account = self._complete_payout(
                payout_id, method or "bank_transfer", reference.strip(), notes, now or datetime.utcnow()
            )
        except (NotFoundError, StateConflictError):
            self.db.rollback()
            raise

        await self._notify_payout(payout, account)
        return payout

    def list_payouts(self, status: Optional[str], user: User) -> list[Payout]:
        require_admin(self.db, user)
        if status and status not in {s.value for s in PayoutStatus}:
            raise ValidationError(f"Unknown payout status '{status}'")
        return self.repo.list_payouts(self.db, status)

    def center_payouts(self, center_id: int, user: User) -> list[Payout]:
        if not is_admin(self.db, user):
            require_center_staff(self.db, user, center_id)
        return self.repo.get_center_payouts(self.db, center_id)

    def earnings_summary(self, center_id: int, user: User) -> dict:
        """Lifetime earnings for a repair center, split by payout status"""
        if not is_admin(self.db, user):
            require_center_staff(self.db, user, center_id)

        zero = Decimal("0")
        summary = {
            "repair_center_id": center_id,
            "currency": DEFAULT_CURRENCY,
            "total_jobs": 0,
            "gross_earnings": zero,
            "total_commission": zero,
            "net_earnings": zero,
            "paid_out": zero,
            "pending_payout": zero,
        }
        for status, count, gross, commission, net in self.repo.get_center_totals(self.db, center_id):
            gross, commission, net = quantize(gross), quantize(commission), quantize(net)
            summary["total_jobs"] += count
            summary["gross_earnings"] += gross
            summary["total_commission"] += commission
            summary["net_earnings"] += net
            if status == PayoutStatus.COMPLETED.value:
                summary["paid_out"] += net
            elif status == PayoutStatus.PENDING.value:
                summary["pending_payout"] += net

        payouts = self.repo.get_center_payouts(self.db, center_id)
        summary["currency"] = payouts[0].currency if payouts else DEFAULT_CURRENCY
        return summary
