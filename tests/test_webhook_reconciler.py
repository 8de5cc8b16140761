"""Courier and payment callbacks applied to the ledger"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from fixbudi.domain.deliveries.couriers import CourierEvent
from fixbudi.domain.webhooks.reconciler import WebhookReconciler, is_forward_progress
from fixbudi.enums import CashPaymentStatus, DeliveryStatus, JobStatus
from fixbudi.errors import NotFoundError
from fixbudi.models import JobStatusHistory
from fixbudi.models_delivery import DeliveryCommission, DeliveryRequest, DeliveryStatusHistory
from fixbudi.models_payment import Payment

T0 = datetime(2024, 3, 1, 9, 0, 0)


def make_delivery(db, job, provider="sendstack", order_id="SS-1", leg="pickup", status="pending", cost="2000"):
    delivery = DeliveryRequest(
        repair_job_id=job.id,
        delivery_type=leg,
        provider=provider,
        provider_order_id=order_id,
        pickup_address="5 Admiralty Way, Lekki, Lagos",
        delivery_address="12 Allen Avenue, Ikeja, Lagos",
        estimated_cost=Decimal(cost),
        app_delivery_commission=Decimal(cost) * Decimal("0.05"),
        delivery_status=status,
    )
    db.add(delivery)
    db.flush()
    db.add(
        DeliveryCommission(
            delivery_request_id=delivery.id,
            repair_job_id=job.id,
            delivery_cost=Decimal(cost),
            commission_amount=Decimal(cost) * Decimal("0.05"),
            commission_rate=Decimal("0.05"),
        )
    )
    db.commit()
    db.refresh(delivery)
    return delivery


def event(order_id, status, provider_status=None, **fields):
    return CourierEvent(
        provider_order_id=order_id,
        provider_status=provider_status or status.value,
        status=status,
        **fields,
    )


def history(db, delivery):
    return (
        db.query(DeliveryStatusHistory)
        .filter_by(delivery_request_id=delivery.id)
        .order_by(DeliveryStatusHistory.id)
        .all()
    )


class TestForwardProgress:
    def test_rank_order(self):
        assert is_forward_progress("pending", "assigned")
        assert is_forward_progress("assigned", "delivered")
        assert not is_forward_progress("in_transit", "picked_up")
        assert not is_forward_progress("picked_up", "picked_up")

    def test_failure_states_win_from_any_open_status(self):
        assert is_forward_progress("in_transit", "failed")
        assert is_forward_progress("pending", "cancelled")

    def test_terminal_statuses_are_final(self):
        assert not is_forward_progress("delivered", "in_transit")
        assert not is_forward_progress("cancelled", "delivered")
        assert not is_forward_progress("failed", "pending")


class TestCourierEvents:
    """At-least-once, out-of-order courier callbacks"""

    def test_pickup_delivered_schedules_repair(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)
        delivery = make_delivery(db, job)

        result = WebhookReconciler(db).reconcile_courier_event(
            "sendstack", event("SS-1", DeliveryStatus.DELIVERED), now=T0
        )

        assert result.changed is True
        assert result.status == "delivered"
        assert result.job_status == JobStatus.PICKUP_SCHEDULED.value

        db.refresh(job)
        db.refresh(delivery)
        assert job.job_status == JobStatus.PICKUP_SCHEDULED.value
        assert delivery.actual_delivery_time == T0
        # Cash is only reconciled on the return leg
        assert delivery.cash_payment_status == CashPaymentStatus.PENDING.value

        causes = [h.cause for h in db.query(JobStatusHistory).filter_by(repair_job_id=job.id)]
        assert causes == ["courier_webhook"]

    def test_replayed_delivery_keeps_first_timestamp(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)
        delivery = make_delivery(db, job)
        reconciler = WebhookReconciler(db)

        reconciler.reconcile_courier_event("sendstack", event("SS-1", DeliveryStatus.DELIVERED), now=T0)
        replay = reconciler.reconcile_courier_event(
            "sendstack", event("SS-1", DeliveryStatus.DELIVERED), now=T0 + timedelta(hours=2)
        )

        assert replay.changed is False
        assert replay.job_status is None
        db.refresh(delivery)
        assert delivery.actual_delivery_time == T0
        assert [h.status for h in history(db, delivery)] == ["delivered", "delivered"]
        assert db.query(JobStatusHistory).filter_by(repair_job_id=job.id).count() == 1

    def test_stale_event_is_history_only(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)
        delivery = make_delivery(db, job, status="in_transit")

        result = WebhookReconciler(db).reconcile_courier_event(
            "sendstack", event("SS-1", DeliveryStatus.ASSIGNED, provider_status="accepted"), now=T0
        )

        assert result.changed is False
        assert result.status == "in_transit"
        rows = history(db, delivery)
        assert [(h.status, h.provider_status) for h in rows] == [("assigned", "accepted")]

    def test_pickup_records_driver_and_time(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)
        delivery = make_delivery(db, job, status="assigned")

        WebhookReconciler(db).reconcile_courier_event(
            "sendstack",
            event(
                "SS-1",
                DeliveryStatus.PICKED_UP,
                driver_name="Tunde",
                driver_phone="+2348055555555",
                location={"lat": 6.45, "lng": 3.39},
            ),
            now=T0,
        )

        db.refresh(delivery)
        assert delivery.delivery_status == "picked_up"
        assert delivery.driver_name == "Tunde"
        assert delivery.actual_pickup_time == T0
        assert history(db, delivery)[0].location == {"lat": 6.45, "lng": 3.39}

    def test_return_leg_delivered_via_sendstack_confirms_cash(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.REPAIR_COMPLETED, quoted_cost=15000)
        delivery = make_delivery(db, job, leg="return", status="in_transit")

        result = WebhookReconciler(db).reconcile_courier_event(
            "sendstack", event("SS-1", DeliveryStatus.DELIVERED), now=T0
        )

        assert result.job_status == JobStatus.READY_FOR_RETURN.value
        db.refresh(delivery)
        assert delivery.cash_payment_status == CashPaymentStatus.CONFIRMED.value
        assert delivery.cash_payment_confirmed_by == "driver"
        assert delivery.cash_payment_confirmed_at == T0

    def test_return_leg_delivered_via_terminal_awaits_confirmation(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.REPAIR_COMPLETED, quoted_cost=15000)
        delivery = make_delivery(db, job, provider="terminal_africa", order_id="SH-9", leg="return")

        WebhookReconciler(db).reconcile_courier_event(
            "terminal_africa", event("SH-9", DeliveryStatus.DELIVERED), now=T0
        )

        db.refresh(delivery)
        assert delivery.cash_payment_status == CashPaymentStatus.AWAITING_CONFIRMATION.value
        assert delivery.cash_payment_confirmed_by is None

    def test_job_side_effect_skipped_when_job_moved_on(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.CANCELLED, quoted_cost=15000)
        delivery = make_delivery(db, job)

        result = WebhookReconciler(db).reconcile_courier_event(
            "sendstack", event("SS-1", DeliveryStatus.DELIVERED), now=T0
        )

        assert result.status == "delivered"
        assert result.job_status is None
        db.refresh(job)
        db.refresh(delivery)
        assert job.job_status == JobStatus.CANCELLED.value
        assert delivery.delivery_status == "delivered"

    def test_actual_cost_recomputes_commission(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)
        delivery = make_delivery(db, job, cost="1800")

        WebhookReconciler(db).reconcile_courier_event(
            "sendstack",
            event("SS-1", DeliveryStatus.IN_TRANSIT, actual_cost=Decimal("2000")),
            now=T0,
        )

        db.refresh(delivery)
        assert delivery.actual_cost == Decimal("2000.00")
        assert delivery.app_delivery_commission == Decimal("100.00")
        commission = db.query(DeliveryCommission).filter_by(delivery_request_id=delivery.id).one()
        assert commission.delivery_cost == Decimal("2000.00")
        assert commission.commission_amount == Decimal("100.00")

    def test_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            WebhookReconciler(db).reconcile_courier_event("sendstack", event("SS-404", DeliveryStatus.DELIVERED))

    def test_same_order_id_on_other_courier_is_not_matched(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)
        make_delivery(db, job, provider="sendstack", order_id="X-1")

        with pytest.raises(NotFoundError):
            WebhookReconciler(db).reconcile_courier_event(
                "terminal_africa", event("X-1", DeliveryStatus.DELIVERED)
            )


class TestConcurrentCourierEvents:
    """The same callback delivered twice at once on separate connections"""

    def test_losing_duplicate_is_history_only(self, sessions, file_factory):
        first, second = sessions
        customer = file_factory.user()
        center = file_factory.center()
        job = file_factory.job(customer, center, status=JobStatus.QUOTE_ACCEPTED, quoted_cost=15000)
        delivery = make_delivery(first, job)
        second.get(DeliveryRequest, delivery.id)  # both requests read the leg as pending

        winner = WebhookReconciler(first).reconcile_courier_event(
            "sendstack", event("SS-1", DeliveryStatus.DELIVERED), now=T0
        )
        loser = WebhookReconciler(second).reconcile_courier_event(
            "sendstack", event("SS-1", DeliveryStatus.DELIVERED), now=T0 + timedelta(seconds=1)
        )

        assert winner.changed is True
        assert winner.job_status == JobStatus.PICKUP_SCHEDULED.value
        assert loser.changed is False
        assert loser.status == DeliveryStatus.DELIVERED.value
        assert loser.job_status is None

        stored = second.get(DeliveryRequest, delivery.id)
        assert stored.actual_delivery_time == T0
        assert [h.status for h in history(second, stored)] == ["delivered", "delivered"]
        assert second.query(JobStatusHistory).filter_by(repair_job_id=job.id).count() == 1


def make_payment(db, job, provider="paystack", reference="FXB-PAY-1", status="pending"):
    payment = Payment(
        repair_job_id=job.id,
        user_id=job.user_id,
        provider=provider,
        provider_reference=reference,
        amount=Decimal("107500"),
        payment_status=status,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


class TestPaymentEvents:
    """Payment callbacks only touch the Payment row"""

    def test_paystack_success_records_payment_only(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.READY_FOR_RETURN, quoted_cost=100000)
        payment = make_payment(db, job)

        result = WebhookReconciler(db).reconcile_payment_event(
            "paystack", "charge.success", {"reference": "FXB-PAY-1", "id": 4099260516}, now=T0
        )

        assert result.changed is True
        assert result.status == "completed"
        db.refresh(payment)
        db.refresh(job)
        assert payment.payment_date == T0
        assert payment.transaction_id == "4099260516"
        assert payment.webhook_received_at == T0
        assert job.job_status == JobStatus.READY_FOR_RETURN.value

    def test_success_replay_keeps_first_payment_date(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.READY_FOR_RETURN, quoted_cost=100000)
        payment = make_payment(db, job)
        reconciler = WebhookReconciler(db)
        later = T0 + timedelta(minutes=5)

        reconciler.reconcile_payment_event("paystack", "charge.success", {"reference": "FXB-PAY-1"}, now=T0)
        replay = reconciler.reconcile_payment_event(
            "paystack", "charge.success", {"reference": "FXB-PAY-1"}, now=later
        )

        assert replay.changed is False
        db.refresh(payment)
        assert payment.payment_date == T0
        assert payment.webhook_received_at == later

    def test_late_failure_never_regresses_completed_payment(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.READY_FOR_RETURN, quoted_cost=100000)
        payment = make_payment(db, job)
        reconciler = WebhookReconciler(db)

        reconciler.reconcile_payment_event("paystack", "charge.success", {"reference": "FXB-PAY-1"}, now=T0)
        result = reconciler.reconcile_payment_event(
            "paystack", "charge.failed", {"reference": "FXB-PAY-1", "gateway_response": "Declined"}, now=T0
        )

        assert result.changed is False
        assert result.status == "completed"
        db.refresh(payment)
        assert payment.failure_reason is None

    def test_failure_before_success_is_recovered(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.READY_FOR_RETURN, quoted_cost=100000)
        payment = make_payment(db, job)
        reconciler = WebhookReconciler(db)

        reconciler.reconcile_payment_event(
            "paystack", "charge.failed", {"reference": "FXB-PAY-1", "gateway_response": "Insufficient Funds"}
        )
        db.refresh(payment)
        assert payment.payment_status == "failed"
        assert payment.failure_reason == "Insufficient Funds"

        reconciler.reconcile_payment_event("paystack", "charge.success", {"reference": "FXB-PAY-1"}, now=T0)
        db.refresh(payment)
        assert payment.payment_status == "completed"
        assert payment.failure_reason is None

    def test_stripe_intent_events_use_transaction_id(self, db, factory, customer, center):
        job = factory.job(customer, center, status=JobStatus.READY_FOR_RETURN, quoted_cost=100000)
        payment = make_payment(db, job, provider="stripe", reference="cs_test_123")
        reconciler = WebhookReconciler(db)

        reconciler.reconcile_payment_event(
            "stripe", "checkout.session.completed", {"id": "cs_test_123", "payment_intent": "pi_456"}, now=T0
        )
        result = reconciler.reconcile_payment_event(
            "stripe", "payment_intent.payment_failed", {"id": "pi_456"}, now=T0
        )

        assert result.entity_id == payment.id
        assert result.status == "completed"
        db.refresh(payment)
        assert payment.transaction_id == "pi_456"

    def test_unhandled_event_is_ignored(self, db):
        result = WebhookReconciler(db).reconcile_payment_event("paystack", "transfer.success", {"reference": "x"})

        assert result.ignored is True
        assert result.entity_id is None

    def test_unknown_reference(self, db):
        with pytest.raises(NotFoundError):
            WebhookReconciler(db).reconcile_payment_event("paystack", "charge.success", {"reference": "nope"})
