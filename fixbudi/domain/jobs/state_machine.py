"""
Repair job status transitions

Every status change goes through `transition_job`, which validates the move,
writes it with a compare-and-set on the current status and appends a
JobStatusHistory row. `completed` is reachable only through the completion
gate, which uses `record_transition` after its own conditional update.
"""

import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...enums import TERMINAL_JOB_STATUSES, JobStatus, TransitionCause
from ...errors import StateConflictError
from ...models import JobStatusHistory, RepairJob, User

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    JobStatus.REQUESTED: {JobStatus.QUOTE_NEGOTIATING, JobStatus.QUOTE_ACCEPTED, JobStatus.CANCELLED},
    JobStatus.QUOTE_NEGOTIATING: {JobStatus.QUOTE_ACCEPTED, JobStatus.IN_REPAIR, JobStatus.CANCELLED},
    JobStatus.QUOTE_ACCEPTED: {JobStatus.PICKUP_SCHEDULED, JobStatus.CANCELLED},
    JobStatus.PICKUP_SCHEDULED: {JobStatus.IN_REPAIR, JobStatus.CANCELLED},
    JobStatus.IN_REPAIR: {JobStatus.REPAIR_COMPLETED, JobStatus.QUOTE_NEGOTIATING, JobStatus.CANCELLED},
    JobStatus.REPAIR_COMPLETED: {JobStatus.READY_FOR_RETURN, JobStatus.CANCELLED},
    JobStatus.READY_FOR_RETURN: {JobStatus.RETURNED, JobStatus.CANCELLED},
    JobStatus.RETURNED: {JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.CANCELLED: set(),
}

# Resolving a cost adjustment may move any active job to these statuses
ADJUSTMENT_RESOLUTION_TARGETS = {JobStatus.IN_REPAIR, JobStatus.QUOTE_NEGOTIATING}


def can_transition(current_status: str, new_status: str, cause: Optional[str] = None) -> bool:
    """Check if a job status transition is allowed"""
    current = JobStatus(current_status)
    target = JobStatus(new_status)

    if target == JobStatus.COMPLETED:
        return False
    if cause == TransitionCause.COST_ADJUSTMENT and target in ADJUSTMENT_RESOLUTION_TARGETS:
        return current not in TERMINAL_JOB_STATUSES
    return target in ALLOWED_TRANSITIONS[current]


def record_transition(
    db: Session,
    job_id: int,
    from_status: Optional[str],
    to_status: str,
    cause: Union[TransitionCause, str],
    actor: Optional[User] = None,
    note: Optional[str] = None,
) -> JobStatusHistory:
    """Append a status history row; never updates or deletes existing rows"""
    entry = JobStatusHistory(
        repair_job_id=job_id,
        from_status=from_status,
        to_status=to_status,
        cause=TransitionCause(cause).value,
        actor_user_id=actor.id if actor else None,
        note=note,
    )
    db.add(entry)
    return entry


def transition_job(
    db: Session,
    job: RepairJob,
    new_status: Union[JobStatus, str],
    cause: Union[TransitionCause, str],
    actor: Optional[User] = None,
    note: Optional[str] = None,
    extra_values: Optional[dict] = None,
) -> RepairJob:
    """
    Move a job to `new_status`.

    The write only succeeds while the row still holds the status the caller
    read; a concurrent change raises StateConflictError. The caller owns the
    transaction and commits.
    """
    target = JobStatus(new_status)
    current = job.job_status

    if target == JobStatus.COMPLETED:
        raise StateConflictError("Jobs are completed only after the customer confirms return and satisfaction")

    if not can_transition(current, target.value, cause):
        raise StateConflictError(f"Cannot move repair job to '{target.value}'", current_state=current)

    values = {"job_status": target.value, "updated_at": datetime.utcnow()}
    if extra_values:
        values.update(extra_values)

    result = db.execute(
        update(RepairJob)
        .where(RepairJob.id == job.id, RepairJob.job_status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        fresh = db.get(RepairJob, job.id)
        logger.warning(f"⚠️ Concurrent status change on job {job.id}: expected '{current}'")
        raise StateConflictError(
            "Repair job was modified by another request", current_state=fresh.job_status if fresh else None
        )

    record_transition(db, job.id, current, target.value, cause, actor=actor, note=note)
    db.flush()
    db.refresh(job)
    logger.info(f"✅ Job {job.id} transitioned: {current} → {target.value} ({TransitionCause(cause).value})")
    return job
