"""Payout creation, batch processing and repair checkout"""

import json
from datetime import datetime
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from fixbudi.domain.settlement.payments import RepairPaymentService
from fixbudi.domain.settlement.paystack import PaystackService
from fixbudi.domain.settlement.service import SettlementService
from fixbudi.domain.settlement.stripe_checkout import StripeCheckoutService
from fixbudi.domain.webhooks.reconciler import WebhookReconciler
from fixbudi.enums import JobStatus, PayoutStatus
from fixbudi.errors import AuthorizationError, StateConflictError, UpstreamProviderError, ValidationError
from fixbudi.models_payment import Payment, Payout

NOW = datetime(2024, 2, 14, 10, 0, 0)


def _completed_job(factory, customer, center, cost=100000):
    job = factory.job(customer, center, status=JobStatus.COMPLETED, quoted_cost=cost)
    factory.completed_payment(job)
    return job


class TestCreatePayout:
    def test_payout_split_and_period(self, db, notifier, factory, customer, center):
        job = _completed_job(factory, customer, center)

        payout = SettlementService(db, notifier=notifier).create_payout_for_job(job, now=NOW)
        db.commit()

        assert payout.commission_amount == Decimal("7500.00")
        assert payout.net_amount == Decimal("92500.00")
        assert payout.settlement_period == "2024-W07"
        assert payout.payout_status == PayoutStatus.PENDING.value

    def test_second_call_returns_existing_payout(self, db, notifier, factory, customer, center):
        job = _completed_job(factory, customer, center)
        service = SettlementService(db, notifier=notifier)

        first = service.create_payout_for_job(job, now=NOW)
        db.commit()
        second = service.create_payout_for_job(job, now=NOW)

        assert first.id == second.id
        assert db.query(Payout).count() == 1

    def test_approved_final_cost_wins_over_quote(self, db, notifier, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.COMPLETED, quoted_cost=20000, final_cost=25000)

        payout = SettlementService(db, notifier=notifier).create_payout_for_job(job, now=NOW)

        assert payout.gross_amount == Decimal("25000.00")


class TestBatchPayouts:
    """Each payout in a batch succeeds or fails on its own"""

    @pytest.mark.asyncio
    async def test_center_without_bank_account_fails_alone(self, db, notifier, emails, factory, customer, admin):
        paid_center = factory.center(name="Kola Repairs Ltd", email="kola@example.com")
        other_paid_center = factory.center(name="Ibadan Fixers", email="ibadan@example.com")
        unbanked_center = factory.center(name="No Bank Repairs", email="nobank@example.com")
        factory.bank_account(paid_center)
        factory.bank_account(other_paid_center)

        service = SettlementService(db, notifier=notifier)
        payouts = []
        for center in (paid_center, other_paid_center, unbanked_center):
            payouts.append(service.create_payout_for_job(_completed_job(factory, customer, center), now=NOW))
        db.commit()
        ids = [payout.id for payout in payouts]

        result = await service.process_batch(ids, "bank_transfer", "BATCH-0214", None, admin, now=NOW)

        assert result.success is True
        assert result.total == 3
        assert result.successful_count == 2
        assert result.failed_count == 1
        assert result.successful == ids[:2]
        assert result.failed[0].id == ids[2]
        assert "bank account" in result.failed[0].error

        db.expire_all()
        statuses = {p.id: (p.payout_status, p.payout_reference) for p in db.query(Payout).all()}
        assert statuses[ids[0]] == ("completed", f"BATCH-0214-{ids[0]}")
        assert statuses[ids[1]] == ("completed", f"BATCH-0214-{ids[1]}")
        assert statuses[ids[2]] == ("pending", None)
        assert sorted(emails.recipients()) == ["ibadan@example.com", "kola@example.com"]

    @pytest.mark.asyncio
    async def test_already_completed_and_missing_payouts_reported(self, db, notifier, factory, customer, center, admin):
        factory.bank_account(center)
        service = SettlementService(db, notifier=notifier)
        payout = service.create_payout_for_job(_completed_job(factory, customer, center), now=NOW)
        db.commit()

        await service.process_batch([payout.id], "bank_transfer", "FIRST", None, admin, now=NOW)
        result = await service.process_batch([payout.id, 9999], "bank_transfer", "SECOND", None, admin, now=NOW)

        assert result.successful_count == 0
        assert [failure.id for failure in result.failed] == [payout.id, 9999]
        db.refresh(payout)
        assert payout.payout_reference == f"FIRST-{payout.id}"

    @pytest.mark.asyncio
    async def test_batch_is_admin_only(self, db, notifier, technician):
        with pytest.raises(AuthorizationError):
            await SettlementService(db, notifier=notifier).process_batch([1], "bank_transfer", "REF", None, technician)

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, db, notifier, admin):
        with pytest.raises(ValidationError):
            await SettlementService(db, notifier=notifier).process_batch([], "bank_transfer", "REF", None, admin)

    @pytest.mark.asyncio
    async def test_single_payout_raises_without_bank_account(self, db, notifier, factory, customer, center, admin):
        service = SettlementService(db, notifier=notifier)
        payout = service.create_payout_for_job(_completed_job(factory, customer, center), now=NOW)
        db.commit()

        with pytest.raises(StateConflictError):
            await service.process_payout(payout.id, "TRF-1", "bank_transfer", None, admin, now=NOW)


class TestEarnings:
    @pytest.mark.asyncio
    async def test_summary_splits_paid_and_pending(self, db, notifier, factory, customer, center, technician, admin):
        factory.bank_account(center)
        service = SettlementService(db, notifier=notifier)
        first = service.create_payout_for_job(_completed_job(factory, customer, center, cost=100000), now=NOW)
        service.create_payout_for_job(_completed_job(factory, customer, center, cost=20000), now=NOW)
        db.commit()
        await service.process_payout(first.id, "TRF-1", "bank_transfer", None, admin, now=NOW)

        summary = service.earnings_summary(center.id, technician)

        assert summary["total_jobs"] == 2
        assert summary["gross_earnings"] == Decimal("120000.00")
        assert summary["paid_out"] == Decimal("92500.00")
        assert summary["pending_payout"] == Decimal("18500.00")
        assert summary["currency"] == "NGN"


def _paystack_transport(captured):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        body = captured[-1]
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "authorization_url": "https://checkout.paystack.com/abc123",
                    "access_code": "abc123",
                    "reference": body["reference"],
                },
            },
        )

    return httpx.MockTransport(handler)


class TestRepairPayment:
    @pytest.mark.asyncio
    async def test_checkout_charges_cost_plus_service_fee(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.REPAIR_COMPLETED, quoted_cost=100000)
        captured = []
        paystack = PaystackService(secret_key="sk_test", transport=_paystack_transport(captured))

        payment = await RepairPaymentService(db, paystack=paystack).create_payment(job.id, customer)

        assert payment.amount == Decimal("107500.00")
        assert payment.payment_status == "pending"
        assert payment.checkout_url == "https://checkout.paystack.com/abc123"
        assert captured[0]["amount"] == 10750000
        assert captured[0]["metadata"]["repair_job_id"] == job.id

    @pytest.mark.asyncio
    async def test_pending_adjustment_blocks_payment(self, db, factory, customer, center):
        job = factory.job(
            customer,
            center,
            status=JobStatus.REPAIR_COMPLETED,
            quoted_cost=100000,
            proposed_final_cost=Decimal("120000"),
            cost_adjustment_requested_at=NOW,
        )
        paystack = PaystackService(secret_key="sk_test", transport=_paystack_transport([]))

        with pytest.raises(StateConflictError):
            await RepairPaymentService(db, paystack=paystack).create_payment(job.id, customer)

    @pytest.mark.asyncio
    async def test_provider_rejection_surfaces_as_upstream_error(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.REPAIR_COMPLETED, quoted_cost=100000)
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"status": False}))
        paystack = PaystackService(secret_key="sk_bad", transport=transport)

        with pytest.raises(UpstreamProviderError) as exc:
            await RepairPaymentService(db, paystack=paystack).create_payment(job.id, customer)

        assert exc.value.kind == "unauthorized"
        assert db.query(Payment).count() == 0

    @pytest.mark.asyncio
    async def test_stripe_checkout_is_reconciled_by_session_id(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.REPAIR_COMPLETED, quoted_cost=200, currency="USD")
        forms = []

        def handler(request: httpx.Request) -> httpx.Response:
            forms.append(parse_qs(request.content.decode()))
            return httpx.Response(200, json={"id": "cs_test_123", "url": "https://checkout.stripe.com/c/cs_test_123"})

        stripe = StripeCheckoutService(secret_key="sk_test", transport=httpx.MockTransport(handler))
        payment = await RepairPaymentService(db, stripe=stripe).create_payment(job.id, customer, provider="stripe")

        assert payment.provider == "stripe"
        assert payment.provider_reference == "cs_test_123"
        assert payment.amount == Decimal("215.00")
        assert forms[0]["line_items[0][price_data][unit_amount]"] == ["21500"]
        assert forms[0]["line_items[0][price_data][currency]"] == ["usd"]
        assert forms[0]["metadata[repair_job_id]"] == [str(job.id)]

        result = WebhookReconciler(db).reconcile_payment_event(
            "stripe", "checkout.session.completed", {"id": "cs_test_123", "payment_intent": "pi_123"}
        )

        assert result.status == "completed"
        db.refresh(payment)
        assert payment.transaction_id == "pi_123"

    @pytest.mark.asyncio
    async def test_unknown_checkout_provider_rejected(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.REPAIR_COMPLETED, quoted_cost=100000)

        with pytest.raises(ValidationError):
            await RepairPaymentService(db).create_payment(job.id, customer, provider="flutterwave")
