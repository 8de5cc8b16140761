"""
Cost adjustment service

A repair center may propose a revised final cost after diagnosis. The
proposal is stored beside the job and has no effect on what the center is
paid until the customer approves it. At most one proposal is outstanding
per job; the single-proposal rule and both resolutions are enforced with
conditional updates.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ...config import PLATFORM_FEE_RATE
from ...enums import TERMINAL_JOB_STATUSES, JobStatus, TransitionCause
from ...errors import NotFoundError, StateConflictError, ValidationError
from ...models import RepairJob, User
from ...permissions import require_center_staff, require_job_customer, require_job_participant
from ...services.notification_service import NotificationDispatcher
from ...shared.money import apply_rate, quantize
from ..jobs.repository import JobRepository
from ..jobs.state_machine import transition_job

logger = logging.getLogger(__name__)

TERMINAL_STATUS_VALUES = [s.value for s in TERMINAL_JOB_STATUSES]


def adjustment_state(job: RepairJob) -> str:
    if job.cost_adjustment_requested_at is None:
        return "none"
    if job.cost_adjustment_approved is None:
        return "pending"
    return "approved" if job.cost_adjustment_approved else "declined"


def customer_total(cost: Decimal, currency: str, fee_rate: Decimal = PLATFORM_FEE_RATE) -> dict:
    """Display-only breakdown of what the customer pays for a repair cost"""
    cost = quantize(cost, currency)
    service_fee = apply_rate(cost, fee_rate, currency)
    return {"repair_cost": cost, "service_fee": service_fee, "total": cost + service_fee}


class CostAdjustmentService:
    """Propose, approve and decline repair cost adjustments"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        platform_fee_rate: Decimal = PLATFORM_FEE_RATE,
    ):
        self.db = db
        self.repo = JobRepository()
        self.notifier = notifier or NotificationDispatcher()
        self.platform_fee_rate = platform_fee_rate

    def _load_job(self, job_id: int) -> RepairJob:
        job = self.repo.get_job(self.db, job_id)
        if not job:
            raise NotFoundError("Repair job not found")
        return job

    async def propose(self, job_id: int, final_cost: Decimal, reason: str, user: User) -> RepairJob:
        job = self._load_job(job_id)
        require_center_staff(self.db, user, job.repair_center_id)

        if final_cost is None or final_cost <= 0:
            raise ValidationError("Final cost must be greater than zero")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for a cost adjustment")

        if job.job_status in TERMINAL_STATUS_VALUES:
            raise StateConflictError("Cannot adjust the cost of a closed job", job.job_status)
        if job.has_pending_adjustment:
            raise StateConflictError("A cost adjustment is already awaiting the customer's response")
        if self.repo.get_latest_completed_payment(self.db, job.id):
            raise StateConflictError("Cannot adjust the cost of a repair that has already been paid", job.job_status)

        now = datetime.utcnow()
        proposed = quantize(final_cost, job.currency)
        result = self.db.execute(
            update(RepairJob)
            .where(
                RepairJob.id == job.id,
                RepairJob.job_status.notin_(TERMINAL_STATUS_VALUES),
                or_(
                    RepairJob.cost_adjustment_requested_at.is_(None),
                    RepairJob.cost_adjustment_approved.isnot(None),
                ),
            )
            .values(
                proposed_final_cost=proposed,
                cost_adjustment_reason=reason.strip(),
                cost_adjustment_approved=None,
                cost_adjustment_requested_at=now,
                cost_adjustment_resolved_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            logger.warning(f"⚠️ Concurrent cost adjustment rejected for job {job.id}")
            raise StateConflictError("A cost adjustment is already awaiting the customer's response")

        self.db.commit()
        self.db.refresh(job)
        logger.info(f"💰 Cost adjustment proposed for job {job.id}: {job.quoted_cost} → {proposed}")

        await self.notifier.notify(
            "cost_adjustment_requested",
            {
                "job_id": job.id,
                "appliance": job.appliance_type,
                "original_cost": job.quoted_cost,
                "new_cost": proposed,
                "reason": job.cost_adjustment_reason,
            },
            [job.customer_email],
        )
        return job

    async def approve(self, job_id: int, user: User) -> RepairJob:
        return await self._resolve(job_id, user, approved=True)

    async def decline(self, job_id: int, user: User) -> RepairJob:
        return await self._resolve(job_id, user, approved=False)

    async def _resolve(self, job_id: int, user: User, approved: bool) -> RepairJob:
        job = self._load_job(job_id)
        require_job_customer(job, user)

        if not job.has_pending_adjustment:
            raise StateConflictError("There is no pending cost adjustment for this job", job.job_status)
        if job.job_status in TERMINAL_STATUS_VALUES:
            raise StateConflictError("Cannot resolve a cost adjustment on a closed job", job.job_status)
        if approved and self.repo.get_latest_completed_payment(self.db, job.id):
            raise StateConflictError("Cannot raise the cost of a repair that has already been paid", job.job_status)

        now = datetime.utcnow()
        values = {
            "cost_adjustment_approved": approved,
            "cost_adjustment_resolved_at": now,
            "final_cost": RepairJob.proposed_final_cost if approved else None,
            "updated_at": now,
            # Either outcome reopens the job, so the return has to be confirmed again
            "device_returned_confirmed": False,
            "device_returned_confirmed_at": None,
            "repair_satisfaction_confirmed": False,
            "repair_satisfaction_confirmed_at": None,
        }
        result = self.db.execute(
            update(RepairJob)
            .where(
                RepairJob.id == job.id,
                RepairJob.cost_adjustment_requested_at.isnot(None),
                RepairJob.cost_adjustment_approved.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise StateConflictError("The cost adjustment was already resolved")
        self.db.refresh(job)

        target = JobStatus.IN_REPAIR if approved else JobStatus.QUOTE_NEGOTIATING
        decision = "approved" if approved else "declined"
        if job.job_status != target.value:
            transition_job(
                self.db,
                job,
                target,
                TransitionCause.COST_ADJUSTMENT,
                actor=user,
                note=f"Cost adjustment {decision}",
            )
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"✅ Cost adjustment {decision} for job {job.id}")

        await self.notifier.notify(
            "cost_adjustment_resolved",
            {"job_id": job.id, "decision": decision, "proposed_cost": job.proposed_final_cost},
            self.repo.get_center_recipients(self.db, job.repair_center_id),
        )
        return job

    def summarize(self, job_id: int, user: User) -> dict:
        job = self._load_job(job_id)
        require_job_participant(self.db, job, user)

        state = adjustment_state(job)
        cost = job.proposed_final_cost if state == "pending" else job.settlement_cost
        summary = {
            "job_id": job.id,
            "status": state,
            "original_cost": job.quoted_cost,
            "proposed_cost": job.proposed_final_cost,
            "final_cost": job.final_cost,
            "reason": job.cost_adjustment_reason,
            "currency": job.currency,
            "repair_cost": None,
            "service_fee": None,
            "total": None,
        }
        if cost is not None:
            summary.update(customer_total(cost, job.currency, self.platform_fee_rate))
        return summary
