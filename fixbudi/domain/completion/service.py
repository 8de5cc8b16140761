"""
Completion gate

A returned job is completed only after the customer confirms both that the
appliance came back and that they are satisfied with the repair. Each
confirmation is a one-way conditional update; the move to `completed` is a
compare-and-set on the row itself, so exactly one request wins it and only
that request records the payout.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...enums import ConfirmationType, JobStatus, TransitionCause
from ...errors import NotFoundError, StateConflictError, ValidationError
from ...models import CompletionFeedbackNotification, RepairJob, User
from ...permissions import require_job_customer
from ...services.notification_service import NotificationDispatcher
from ..jobs.repository import JobRepository
from ..jobs.state_machine import record_transition
from ..settlement.service import SettlementService

logger = logging.getLogger(__name__)

RETURNED = JobStatus.RETURNED.value


def validate_rating(rating) -> int:
    if rating is None or isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Valid satisfaction rating (1-5) is required")
    return rating


class CompletionService:
    """Customer confirmations and the move to completed"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        settlement: Optional[SettlementService] = None,
    ):
        self.db = db
        self.repo = JobRepository()
        self.notifier = notifier or NotificationDispatcher()
        self.settlement = settlement or SettlementService(db, notifier=self.notifier)

    async def confirm(
        self,
        job_id: int,
        confirmation_type: str,
        user: User,
        rating: Optional[int] = None,
        feedback: Optional[str] = None,
    ) -> dict:
        job = self.repo.get_job(self.db, job_id)
        if not job:
            raise NotFoundError("Repair job not found")
        require_job_customer(job, user)

        try:
            confirmation = ConfirmationType(confirmation_type)
        except ValueError:
            raise ValidationError("confirmation_type must be 'device_returned' or 'repair_satisfaction'") from None

        if job.job_status != RETURNED:
            raise StateConflictError('Job must be in "returned" status for confirmation', job.job_status)

        now = datetime.utcnow()
        if confirmation == ConfirmationType.DEVICE_RETURNED:
            self._confirm_device_returned(job, now)
        else:
            self._confirm_satisfaction(job, rating, feedback, now)

        job_completed = self._try_complete(job, user, now)
        self.db.commit()
        self.db.refresh(job)

        await self._fan_out(job, confirmation, rating, feedback)

        label = "Device return" if confirmation == ConfirmationType.DEVICE_RETURNED else "Satisfaction"
        return {
            "success": True,
            "message": f"{label} confirmed successfully",
            "job_completed": job_completed,
        }

    def _confirm_device_returned(self, job: RepairJob, now: datetime) -> None:
        if job.device_returned_confirmed:
            raise StateConflictError("Device return already confirmed")

        result = self.db.execute(
            update(RepairJob)
            .where(
                RepairJob.id == job.id,
                RepairJob.job_status == RETURNED,
                RepairJob.device_returned_confirmed == False,  # noqa: E712
            )
            .values(device_returned_confirmed=True, device_returned_confirmed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise StateConflictError("Device return already confirmed")
        logger.info(f"✅ Device return confirmed for job {job.id}")

    def _confirm_satisfaction(
        self, job: RepairJob, rating: Optional[int], feedback: Optional[str], now: datetime
    ) -> None:
        if not job.device_returned_confirmed:
            raise StateConflictError("Device return must be confirmed first")
        if job.repair_satisfaction_confirmed:
            raise StateConflictError("Satisfaction already confirmed")
        rating = validate_rating(rating)

        result = self.db.execute(
            update(RepairJob)
            .where(
                RepairJob.id == job.id,
                RepairJob.job_status == RETURNED,
                RepairJob.device_returned_confirmed == True,  # noqa: E712
                RepairJob.repair_satisfaction_confirmed == False,  # noqa: E712
            )
            .values(
                repair_satisfaction_confirmed=True,
                repair_satisfaction_confirmed_at=now,
                satisfaction_rating=rating,
                satisfaction_feedback=feedback or None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise StateConflictError("Satisfaction already confirmed")
        logger.info(f"✅ Satisfaction confirmed for job {job.id} (rating {rating})")

    def _try_complete(self, job: RepairJob, user: User, now: datetime) -> bool:
        """Complete the job when both confirmations are on the row; only one caller can win"""
        result = self.db.execute(
            update(RepairJob)
            .where(
                RepairJob.id == job.id,
                RepairJob.job_status == RETURNED,
                RepairJob.device_returned_confirmed == True,  # noqa: E712
                RepairJob.repair_satisfaction_confirmed == True,  # noqa: E712
            )
            .values(
                job_status=JobStatus.COMPLETED.value,
                customer_confirmed=True,
                completion_date=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(job)
        if result.rowcount != 1:
            return False

        record_transition(
            self.db,
            job.id,
            RETURNED,
            JobStatus.COMPLETED.value,
            TransitionCause.COMPLETION_GATE,
            actor=user,
            note="Customer confirmed return and satisfaction",
        )
        self.settlement.create_payout_for_job(job, now=now)
        logger.info(f"✅ Job {job.id} completed after customer confirmation")
        return True

    async def _fan_out(
        self,
        job: RepairJob,
        confirmation: ConfirmationType,
        rating: Optional[int],
        feedback: Optional[str],
    ) -> None:
        """Record read-model notifications and email staff; failures never affect the confirmation"""
        notification_data = {
            "job_id": job.id,
            "appliance_type": job.appliance_type,
            "customer_name": job.customer_name,
            "confirmation_type": confirmation.value,
        }
        if confirmation == ConfirmationType.REPAIR_SATISFACTION:
            notification_data["rating"] = rating
            notification_data["feedback"] = feedback

        try:
            for admin in self.repo.get_admins(self.db):
                self.db.add(
                    CompletionFeedbackNotification(
                        repair_job_id=job.id,
                        notification_type=confirmation.value,
                        sent_to="admin",
                        recipient_id=admin.id,
                        notification_data=notification_data,
                    )
                )
            for staff in self.repo.get_active_staff(self.db, job.repair_center_id):
                self.db.add(
                    CompletionFeedbackNotification(
                        repair_job_id=job.id,
                        notification_type=confirmation.value,
                        sent_to="repair_center",
                        recipient_id=staff.id,
                        notification_data=notification_data,
                    )
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record completion notifications for job {job.id}: {e}")

        recipients = [admin.email for admin in self.repo.get_admins(self.db)]
        recipients += self.repo.get_center_recipients(self.db, job.repair_center_id)
        event = "job_completed" if job.job_status == JobStatus.COMPLETED.value else "completion_confirmation"
        await self.notifier.notify(event, notification_data, list(dict.fromkeys(recipients)))
