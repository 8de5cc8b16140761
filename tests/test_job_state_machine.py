"""Repair job transitions, quotes and cancellation"""

from decimal import Decimal

import pytest

from fixbudi.domain.jobs.service import JobService
from fixbudi.domain.jobs.state_machine import can_transition, transition_job
from fixbudi.enums import JobStatus, TransitionCause
from fixbudi.errors import AuthorizationError, StateConflictError, ValidationError
from fixbudi.models import JobStatusHistory, RepairJob


class TestCanTransition:
    def test_happy_path_moves_are_allowed(self):
        path = [
            JobStatus.REQUESTED,
            JobStatus.QUOTE_ACCEPTED,
            JobStatus.PICKUP_SCHEDULED,
            JobStatus.IN_REPAIR,
            JobStatus.REPAIR_COMPLETED,
            JobStatus.READY_FOR_RETURN,
            JobStatus.RETURNED,
        ]
        for current, new in zip(path, path[1:]):
            assert can_transition(current.value, new.value), f"{current} -> {new}"

    def test_completed_is_never_a_direct_target(self):
        for status in JobStatus:
            assert not can_transition(status.value, JobStatus.COMPLETED.value)

    def test_terminal_statuses_have_no_exits(self):
        assert not can_transition(JobStatus.COMPLETED.value, JobStatus.CANCELLED.value)
        assert not can_transition(JobStatus.CANCELLED.value, JobStatus.IN_REPAIR.value)

    def test_skipping_ahead_is_rejected(self):
        assert not can_transition(JobStatus.REQUESTED.value, JobStatus.IN_REPAIR.value)
        assert not can_transition(JobStatus.QUOTE_ACCEPTED.value, JobStatus.RETURNED.value)

    def test_cost_adjustment_may_resolve_from_any_active_status(self):
        assert can_transition(
            JobStatus.REPAIR_COMPLETED.value, JobStatus.IN_REPAIR.value, TransitionCause.COST_ADJUSTMENT
        )
        assert not can_transition(
            JobStatus.REPAIR_COMPLETED.value, JobStatus.IN_REPAIR.value, TransitionCause.REPAIR_CENTER
        )
        assert not can_transition(
            JobStatus.CANCELLED.value, JobStatus.IN_REPAIR.value, TransitionCause.COST_ADJUSTMENT
        )


class TestTransitionJob:
    """The single write path for job status"""

    def test_transition_writes_history(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)

        transition_job(db, job, JobStatus.PICKUP_SCHEDULED, TransitionCause.COURIER_WEBHOOK, note="courier")
        db.commit()

        assert job.job_status == JobStatus.PICKUP_SCHEDULED.value
        history = db.query(JobStatusHistory).filter_by(repair_job_id=job.id).all()
        assert [(h.from_status, h.to_status, h.cause) for h in history] == [
            ("quote_accepted", "pickup_scheduled", "courier_webhook")
        ]

    def test_invalid_transition_reports_current_state(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.REQUESTED)

        with pytest.raises(StateConflictError) as exc:
            transition_job(db, job, JobStatus.RETURNED, TransitionCause.REPAIR_CENTER)

        assert exc.value.status_code == 409
        assert "current state: requested" in exc.value.detail

    def test_stale_read_loses_the_race(self, db, engine, factory, customer, center):
        from sqlalchemy.orm import sessionmaker

        job = factory.job(customer, center, status=JobStatus.IN_REPAIR, quoted_cost=15000)

        other = sessionmaker(bind=engine)()
        try:
            rival = other.get(type(job), job.id)
            transition_job(other, rival, JobStatus.CANCELLED, TransitionCause.REPAIR_CENTER)
            other.commit()
        finally:
            other.close()

        # `job` still believes it is in_repair
        with pytest.raises(StateConflictError) as exc:
            transition_job(db, job, JobStatus.REPAIR_COMPLETED, TransitionCause.REPAIR_CENTER)

        assert exc.value.current_state == JobStatus.CANCELLED.value

    def test_concurrent_updates_from_separate_connections(self, sessions, file_factory):
        first, second = sessions
        customer = file_factory.user()
        center = file_factory.center()
        job = file_factory.job(customer, center, status=JobStatus.IN_REPAIR, quoted_cost=15000)
        stale = second.get(RepairJob, job.id)

        transition_job(first, job, JobStatus.REPAIR_COMPLETED, TransitionCause.REPAIR_CENTER)
        first.commit()

        with pytest.raises(StateConflictError) as exc:
            transition_job(second, stale, JobStatus.CANCELLED, TransitionCause.REPAIR_CENTER)

        assert exc.value.current_state == JobStatus.REPAIR_COMPLETED.value
        history = second.query(JobStatusHistory).filter_by(repair_job_id=job.id).all()
        assert [(h.from_status, h.to_status) for h in history] == [("in_repair", "repair_completed")]

    def test_completed_cannot_be_set_directly(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.RETURNED, quoted_cost=15000)

        with pytest.raises(StateConflictError):
            transition_job(db, job, JobStatus.COMPLETED, TransitionCause.ADMIN)


class TestJobService:
    @pytest.mark.asyncio
    async def test_quote_then_accept(self, db, notifier, emails, factory, customer, center, technician):
        job = factory.job(customer, center)
        service = JobService(db, notifier=notifier)

        await service.provide_quote(job.id, Decimal("15000"), "Replace drum belt", technician)
        job = await service.respond_to_quote(job.id, "accept", None, customer)

        assert job.job_status == JobStatus.QUOTE_ACCEPTED.value
        assert job.quoted_cost == Decimal("15000.00")
        assert job.quote_accepted_at is not None
        assert customer.email in emails.recipients()
        assert center.email in emails.recipients()

    @pytest.mark.asyncio
    async def test_only_staff_can_quote(self, db, notifier, factory, customer, center):
        job = factory.job(customer, center)

        with pytest.raises(AuthorizationError):
            await JobService(db, notifier=notifier).provide_quote(job.id, Decimal("100"), None, customer)

    @pytest.mark.asyncio
    async def test_negotiate_twice_stays_negotiating(self, db, notifier, factory, customer, center):
        job = factory.job(customer, center, quoted_cost=15000)
        service = JobService(db, notifier=notifier)

        await service.respond_to_quote(job.id, "negotiate", "Too high", customer)
        job = await service.respond_to_quote(job.id, "negotiate", "Still too high", customer)

        assert job.job_status == JobStatus.QUOTE_NEGOTIATING.value
        assert len(service.get_status_history(job.id, customer)) == 1

    @pytest.mark.asyncio
    async def test_unknown_quote_response(self, db, notifier, factory, customer, center):
        job = factory.job(customer, center, quoted_cost=15000)

        with pytest.raises(ValidationError):
            await JobService(db, notifier=notifier).respond_to_quote(job.id, "maybe", None, customer)

    @pytest.mark.asyncio
    async def test_return_requires_completed_payment(self, db, notifier, factory, customer, center, technician):
        job = factory.job(customer, center, status=JobStatus.READY_FOR_RETURN, quoted_cost=15000)
        service = JobService(db, notifier=notifier)

        with pytest.raises(StateConflictError):
            await service.update_status(job.id, JobStatus.RETURNED.value, None, technician)

        factory.completed_payment(job, amount=16125)
        job = await service.update_status(job.id, JobStatus.RETURNED.value, None, technician)
        assert job.job_status == JobStatus.RETURNED.value

    @pytest.mark.asyncio
    async def test_return_requires_payment_covering_agreed_cost(
        self, db, notifier, factory, customer, center, technician
    ):
        # Paid for the quote, then the final cost went up
        job = factory.job(
            customer, center, status=JobStatus.READY_FOR_RETURN, quoted_cost=100000, final_cost=150000
        )
        factory.completed_payment(job, amount=107500)

        with pytest.raises(StateConflictError) as exc:
            await JobService(db, notifier=notifier).update_status(
                job.id, JobStatus.RETURNED.value, None, technician
            )

        assert "161250.00" in exc.value.detail
        db.refresh(job)
        assert job.job_status == JobStatus.READY_FOR_RETURN.value

    @pytest.mark.asyncio
    async def test_customer_cancel_notifies_center(self, db, notifier, emails, factory, customer, center, technician):
        job = factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)

        job = await JobService(db, notifier=notifier).cancel_job(job.id, "Changed my mind", customer)

        assert job.job_status == JobStatus.CANCELLED.value
        assert set(emails.recipients()) == {center.email, technician.email}

    @pytest.mark.asyncio
    async def test_completed_job_cannot_be_cancelled(self, db, notifier, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.COMPLETED, quoted_cost=15000)

        with pytest.raises(StateConflictError):
            await JobService(db, notifier=notifier).cancel_job(job.id, None, customer)
