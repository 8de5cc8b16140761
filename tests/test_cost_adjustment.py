"""Cost adjustment proposals and their effect on settlement"""

from decimal import Decimal

import pytest

from fixbudi.domain.adjustments.service import CostAdjustmentService, adjustment_state
from fixbudi.domain.settlement.service import SettlementService
from fixbudi.enums import JobStatus
from fixbudi.errors import AuthorizationError, StateConflictError, ValidationError


@pytest.fixture
def in_repair_job(factory, customer, center):
    return factory.job(customer, center, status=JobStatus.IN_REPAIR, quoted_cost=20000)


class TestProposeAdjustment:
    @pytest.mark.asyncio
    async def test_proposal_leaves_status_and_cost_untouched(
        self, db, notifier, emails, in_repair_job, technician, customer
    ):
        service = CostAdjustmentService(db, notifier=notifier)

        job = await service.propose(in_repair_job.id, Decimal("25000"), "Motor also burnt", technician)

        assert job.job_status == JobStatus.IN_REPAIR.value
        assert job.proposed_final_cost == Decimal("25000.00")
        assert job.final_cost is None
        assert job.settlement_cost == Decimal("20000.00")
        assert adjustment_state(job) == "pending"
        assert emails.recipients() == [customer.email]

    @pytest.mark.asyncio
    async def test_second_proposal_while_pending_rejected(self, db, notifier, in_repair_job, technician):
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(in_repair_job.id, Decimal("25000"), "Motor also burnt", technician)

        with pytest.raises(StateConflictError):
            await service.propose(in_repair_job.id, Decimal("30000"), "Board too", technician)

        db.refresh(in_repair_job)
        assert in_repair_job.proposed_final_cost == Decimal("25000.00")

    @pytest.mark.asyncio
    async def test_reason_required(self, db, notifier, in_repair_job, technician):
        with pytest.raises(ValidationError):
            await CostAdjustmentService(db, notifier=notifier).propose(
                in_repair_job.id, Decimal("25000"), "   ", technician
            )

    @pytest.mark.asyncio
    async def test_non_positive_cost_rejected(self, db, notifier, in_repair_job, technician):
        with pytest.raises(ValidationError):
            await CostAdjustmentService(db, notifier=notifier).propose(
                in_repair_job.id, Decimal("0"), "Free of charge", technician
            )

    @pytest.mark.asyncio
    async def test_customer_cannot_propose(self, db, notifier, in_repair_job, customer):
        with pytest.raises(AuthorizationError):
            await CostAdjustmentService(db, notifier=notifier).propose(
                in_repair_job.id, Decimal("25000"), "Cheaper please", customer
            )

    @pytest.mark.asyncio
    async def test_closed_job_cannot_be_adjusted(self, db, notifier, factory, customer, center, technician):
        job = factory.job(customer, center, status=JobStatus.COMPLETED, quoted_cost=20000)

        with pytest.raises(StateConflictError):
            await CostAdjustmentService(db, notifier=notifier).propose(
                job.id, Decimal("25000"), "Late finding", technician
            )

    @pytest.mark.asyncio
    async def test_paid_job_cannot_be_adjusted(self, db, notifier, factory, customer, center, technician):
        job = factory.job(
            customer, center, status=JobStatus.RETURNED, quoted_cost=100000, device_returned_confirmed=True
        )
        factory.completed_payment(job, amount=107500)

        with pytest.raises(StateConflictError) as exc:
            await CostAdjustmentService(db, notifier=notifier).propose(
                job.id, Decimal("150000"), "Compressor replaced", technician
            )

        assert "already been paid" in exc.value.detail
        db.refresh(job)
        assert job.proposed_final_cost is None
        assert job.job_status == JobStatus.RETURNED.value
        assert job.device_returned_confirmed is True


class TestResolveAdjustment:
    """Customer approval or decline of a pending adjustment"""

    @pytest.mark.asyncio
    async def test_approval_sets_final_cost_used_for_payout(
        self, db, notifier, in_repair_job, technician, customer
    ):
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(in_repair_job.id, Decimal("25000"), "Motor also burnt", technician)

        job = await service.approve(in_repair_job.id, customer)

        assert job.final_cost == Decimal("25000.00")
        assert job.job_status == JobStatus.IN_REPAIR.value
        assert adjustment_state(job) == "approved"

        payout = SettlementService(db, notifier=notifier).create_payout_for_job(job)
        db.commit()
        assert payout.gross_amount == Decimal("25000.00")
        assert payout.commission_amount == Decimal("1875.00")
        assert payout.net_amount == Decimal("23125.00")

    @pytest.mark.asyncio
    async def test_decline_moves_back_to_negotiation(self, db, notifier, in_repair_job, technician, customer):
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(in_repair_job.id, Decimal("25000"), "Motor also burnt", technician)

        job = await service.decline(in_repair_job.id, customer)

        assert job.final_cost is None
        assert job.settlement_cost == Decimal("20000.00")
        assert job.job_status == JobStatus.QUOTE_NEGOTIATING.value
        assert adjustment_state(job) == "declined"

    @pytest.mark.asyncio
    async def test_approval_from_repair_completed_reopens_repair(
        self, db, notifier, factory, customer, center, technician
    ):
        job = factory.job(customer, center, status=JobStatus.REPAIR_COMPLETED, quoted_cost=20000)
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(job.id, Decimal("22000"), "Extra part fitted", technician)

        job = await service.approve(job.id, customer)

        assert job.job_status == JobStatus.IN_REPAIR.value

    @pytest.mark.asyncio
    async def test_resolving_twice_rejected(self, db, notifier, in_repair_job, technician, customer):
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(in_repair_job.id, Decimal("25000"), "Motor also burnt", technician)
        await service.approve(in_repair_job.id, customer)

        with pytest.raises(StateConflictError):
            await service.decline(in_repair_job.id, customer)

    @pytest.mark.asyncio
    async def test_new_proposal_allowed_after_resolution(self, db, notifier, in_repair_job, technician, customer):
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(in_repair_job.id, Decimal("25000"), "Motor also burnt", technician)
        await service.decline(in_repair_job.id, customer)

        job = await service.propose(in_repair_job.id, Decimal("23000"), "Used refurbished motor", technician)

        assert adjustment_state(job) == "pending"
        assert job.proposed_final_cost == Decimal("23000.00")

    @pytest.mark.asyncio
    async def test_only_customer_can_approve(self, db, notifier, in_repair_job, technician):
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(in_repair_job.id, Decimal("25000"), "Motor also burnt", technician)

        with pytest.raises(AuthorizationError):
            await service.approve(in_repair_job.id, technician)

    @pytest.mark.asyncio
    async def test_summary_shows_customer_total(self, db, notifier, in_repair_job, technician, customer):
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(in_repair_job.id, Decimal("20000"), "Same price, new part", technician)

        summary = service.summarize(in_repair_job.id, customer)

        assert summary["status"] == "pending"
        assert summary["service_fee"] == Decimal("1500.00")
        assert summary["total"] == Decimal("21500.00")

    @pytest.mark.asyncio
    async def test_approval_after_payment_completed_rejected(
        self, db, notifier, factory, customer, center, technician
    ):
        job = factory.job(customer, center, status=JobStatus.READY_FOR_RETURN, quoted_cost=100000)
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(job.id, Decimal("150000"), "Compressor replaced", technician)
        # A checkout opened before the proposal settles while it is pending
        factory.completed_payment(job, amount=107500)

        with pytest.raises(StateConflictError):
            await service.approve(job.id, customer)

        db.refresh(job)
        assert job.final_cost is None
        assert job.settlement_cost == Decimal("100000.00")
        assert adjustment_state(job) == "pending"

    @pytest.mark.asyncio
    async def test_resolution_clears_return_confirmations(self, db, notifier, factory, customer, center, technician):
        job = factory.job(
            customer,
            center,
            status=JobStatus.READY_FOR_RETURN,
            quoted_cost=20000,
            device_returned_confirmed=True,
            repair_satisfaction_confirmed=True,
        )
        service = CostAdjustmentService(db, notifier=notifier)
        await service.propose(job.id, Decimal("22000"), "Extra part fitted", technician)

        job = await service.approve(job.id, customer)

        assert job.job_status == JobStatus.IN_REPAIR.value
        assert job.device_returned_confirmed is False
        assert job.device_returned_confirmed_at is None
        assert job.repair_satisfaction_confirmed is False
        assert job.repair_satisfaction_confirmed_at is None
