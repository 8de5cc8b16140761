"""
Capability checks consulted before every mutation

Roles live in `user_roles`; center membership in `repair_center_staff`.
The `require_*` helpers raise AuthorizationError so services can call them
inline before touching any row.
"""

from sqlalchemy.orm import Session

from .errors import AuthorizationError
from .models import RepairCenterStaff, RepairJob, User, UserRole

ADMIN_ROLE = "admin"


def is_admin(db: Session, user: User) -> bool:
    return (
        db.query(UserRole.id).filter(UserRole.user_id == user.id, UserRole.role == ADMIN_ROLE).first()
        is not None
    )


def is_staff_at_center(db: Session, user: User, center_id: int) -> bool:
    return (
        db.query(RepairCenterStaff.id)
        .filter(
            RepairCenterStaff.user_id == user.id,
            RepairCenterStaff.repair_center_id == center_id,
            RepairCenterStaff.is_active == True,  # noqa: E712
        )
        .first()
        is not None
    )


def is_job_customer(job: RepairJob, user: User) -> bool:
    return job.user_id == user.id


def require_admin(db: Session, user: User) -> None:
    if not is_admin(db, user):
        raise AuthorizationError("Admin access required")


def require_center_staff(db: Session, user: User, center_id: int) -> None:
    if not is_staff_at_center(db, user, center_id):
        raise AuthorizationError("Only staff of this repair center can perform this action")


def require_job_customer(job: RepairJob, user: User) -> None:
    if not is_job_customer(job, user):
        raise AuthorizationError("Only the customer who booked this job can perform this action")


def require_job_participant(db: Session, job: RepairJob, user: User) -> None:
    """Customer, staff at the job's center, or an admin"""
    if is_job_customer(job, user) or is_staff_at_center(db, user, job.repair_center_id) or is_admin(db, user):
        return
    raise AuthorizationError("Not authorized to access this repair job")
