"""Repair job service - Quotes, progress updates and cancellation"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...config import PLATFORM_FEE_RATE
from ...enums import JobStatus, TransitionCause
from ...errors import NotFoundError, StateConflictError, ValidationError
from ...models import JobStatusHistory, RepairJob, User
from ...permissions import (
    is_job_customer,
    require_center_staff,
    require_job_customer,
    require_job_participant,
)
from ...services.notification_service import NotificationDispatcher
from ...shared.money import quantize
from ..adjustments.service import customer_total
from .repository import JobRepository
from .state_machine import transition_job

logger = logging.getLogger(__name__)

QUOTABLE_STATUSES = {JobStatus.REQUESTED.value, JobStatus.QUOTE_NEGOTIATING.value}


class JobService:
    """Service layer for the repair job lifecycle"""

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

    def get_job(self, job_id: int, user: User) -> RepairJob:
        job = self._load_job(job_id)
        require_job_participant(self.db, job, user)
        return job

    def get_status_history(self, job_id: int, user: User) -> list[JobStatusHistory]:
        job = self.get_job(job_id, user)
        return self.repo.get_status_history(self.db, job.id)

    async def provide_quote(self, job_id: int, quoted_cost: Decimal, notes: Optional[str], user: User) -> RepairJob:
        """Repair center quotes the job; re-quoting is allowed while negotiating"""
        job = self._load_job(job_id)
        require_center_staff(self.db, user, job.repair_center_id)

        if job.job_status not in QUOTABLE_STATUSES:
            raise StateConflictError("Quotes can only be provided before the customer accepts", job.job_status)

        job.quoted_cost = quantize(quoted_cost, job.currency)
        job.quote_notes = notes
        job.quote_provided_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"💰 Quote of {job.quoted_cost} {job.currency} provided for job {job.id}")

        await self.notifier.notify(
            "quote_provided",
            {
                "job_id": job.id,
                "appliance": job.appliance_type,
                "quoted_cost": f"{job.quoted_cost} {job.currency}",
                "notes": notes,
            },
            [job.customer_email],
        )
        return job

    async def respond_to_quote(self, job_id: int, response: str, notes: Optional[str], user: User) -> RepairJob:
        """Customer accepts, negotiates or rejects the current quote"""
        job = self._load_job(job_id)
        require_job_customer(job, user)

        if job.quoted_cost is None:
            raise StateConflictError("No quote has been provided for this job yet", job.job_status)

        note = f"Customer response: {notes}" if notes else None

        if response == "accept":
            transition_job(
                self.db,
                job,
                JobStatus.QUOTE_ACCEPTED,
                TransitionCause.CUSTOMER,
                actor=user,
                note=note,
                extra_values={"quote_accepted_at": datetime.utcnow()},
            )
        elif response == "negotiate":
            if job.job_status != JobStatus.QUOTE_NEGOTIATING.value:
                transition_job(self.db, job, JobStatus.QUOTE_NEGOTIATING, TransitionCause.CUSTOMER, actor=user, note=note)
        elif response == "reject":
            transition_job(self.db, job, JobStatus.CANCELLED, TransitionCause.CUSTOMER, actor=user, note=note)
        else:
            raise ValidationError(f"Unknown quote response '{response}'")

        if notes:
            job.notes = note
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"✅ Customer responded '{response}' to quote for job {job.id}")

        await self.notifier.notify(
            "quote_response",
            {"job_id": job.id, "response": response, "customer": job.customer_name, "notes": notes},
            self.repo.get_center_recipients(self.db, job.repair_center_id),
        )
        return job

    async def update_status(self, job_id: int, status: str, note: Optional[str], user: User) -> RepairJob:
        """Repair center progress update"""
        job = self._load_job(job_id)
        require_center_staff(self.db, user, job.repair_center_id)

        if status == JobStatus.RETURNED.value:
            payment = self.repo.get_latest_completed_payment(self.db, job.id)
            if not payment:
                raise StateConflictError(
                    "Payment must be completed before the appliance can be returned", job.job_status
                )
            # The agreed cost may have changed after the customer paid
            cost = job.settlement_cost
            due = customer_total(cost, job.currency, self.platform_fee_rate)["total"] if cost is not None else None
            if due is None or payment.amount < due:
                raise StateConflictError(
                    f"Completed payment of {payment.amount} does not cover the amount due ({due})", job.job_status
                )

        transition_job(self.db, job, status, TransitionCause.REPAIR_CENTER, actor=user, note=note)
        self.db.commit()
        self.db.refresh(job)

        if status == JobStatus.REPAIR_COMPLETED.value:
            cost = job.settlement_cost
            await self.notifier.notify(
                "repair_completed",
                {
                    "job_id": job.id,
                    "appliance": job.appliance_type,
                    "amount_due": f"{cost} {job.currency}" if cost is not None else None,
                },
                [job.customer_email],
            )
        return job

    async def cancel_job(self, job_id: int, reason: Optional[str], user: User) -> RepairJob:
        job = self._load_job(job_id)
        if is_job_customer(job, user):
            cause = TransitionCause.CUSTOMER
        else:
            require_center_staff(self.db, user, job.repair_center_id)
            cause = TransitionCause.REPAIR_CENTER

        transition_job(self.db, job, JobStatus.CANCELLED, cause, actor=user, note=reason)
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"⚠️ Job {job.id} cancelled by {cause.value}")

        if cause == TransitionCause.CUSTOMER:
            recipients = self.repo.get_center_recipients(self.db, job.repair_center_id)
        else:
            recipients = [job.customer_email]
        await self.notifier.notify("job_cancelled", {"job_id": job.id, "reason": reason}, recipients)
        return job
