"""Repair job repository - Database operations for jobs and their participants"""

from typing import Optional

from sqlalchemy.orm import Session

from ...enums import PaymentStatus
from ...models import JobStatusHistory, RepairCenter, RepairCenterStaff, RepairJob, User, UserRole
from ...models_payment import Payment


class JobRepository:
    """Repository for repair job database operations"""

    @staticmethod
    def get_job(db: Session, job_id: int) -> Optional[RepairJob]:
        return db.query(RepairJob).filter(RepairJob.id == job_id).first()

    @staticmethod
    def get_status_history(db: Session, job_id: int) -> list[JobStatusHistory]:
        return (
            db.query(JobStatusHistory)
            .filter(JobStatusHistory.repair_job_id == job_id)
            .order_by(JobStatusHistory.id.asc())
            .all()
        )

    @staticmethod
    def get_latest_completed_payment(db: Session, job_id: int) -> Optional[Payment]:
        """Most recent completed customer payment for the job"""
        return (
            db.query(Payment)
            .filter(Payment.repair_job_id == job_id, Payment.payment_status == PaymentStatus.COMPLETED.value)
            .order_by(Payment.payment_date.desc(), Payment.id.desc())
            .first()
        )

    @staticmethod
    def get_center(db: Session, center_id: int) -> Optional[RepairCenter]:
        return db.query(RepairCenter).filter(RepairCenter.id == center_id).first()

    @staticmethod
    def get_active_staff(db: Session, center_id: int) -> list[User]:
        return (
            db.query(User)
            .join(RepairCenterStaff, RepairCenterStaff.user_id == User.id)
            .filter(RepairCenterStaff.repair_center_id == center_id, RepairCenterStaff.is_active == True)  # noqa: E712
            .all()
        )

    @staticmethod
    def get_admins(db: Session) -> list[User]:
        return db.query(User).join(UserRole, UserRole.user_id == User.id).filter(UserRole.role == "admin").all()

    @staticmethod
    def get_center_recipients(db: Session, center_id: int) -> list[str]:
        """Email addresses that receive repair center notifications"""
        recipients = []
        center = JobRepository.get_center(db, center_id)
        if center and center.email:
            recipients.append(center.email)
        for staff in JobRepository.get_active_staff(db, center_id):
            if staff.email and staff.email not in recipients:
                recipients.append(staff.email)
        return recipients
