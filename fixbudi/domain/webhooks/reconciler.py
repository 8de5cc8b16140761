"""
Webhook reconciler

Applies courier and payment callbacks to the ledger. Providers deliver at
least once and in any order, so:
- every courier event is appended to the delivery history, even duplicates
- the current-status projection only moves forward, or into a terminal state
- first-occurrence timestamps are written only while still null
- a completed payment never goes back to failed

Payment callbacks record the payment only. Jobs are completed by the
customer's confirmations, never by a payment webhook.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...config import DELIVERY_COMMISSION_RATE
from ...enums import (
    DELIVERY_STATUS_RANK,
    TERMINAL_DELIVERY_STATUSES,
    CashPaymentStatus,
    DeliveryStatus,
    DeliveryType,
    JobStatus,
    PaymentStatus,
    TransitionCause,
)
from ...errors import NotFoundError, StateConflictError
from ...models_delivery import DeliveryCommission, DeliveryRequest
from ...models_payment import Payment
from ...shared.money import apply_rate, quantize
from ..deliveries.couriers import COURIERS, CourierEvent
from ..deliveries.repository import DeliveryRepository
from ..jobs.state_machine import transition_job

logger = logging.getLogger(__name__)

# Job side effects of a delivered leg: leg -> (expected job status, new job status)
DELIVERED_LEG_JOB_EFFECTS = {
    DeliveryType.PICKUP.value: (JobStatus.QUOTE_ACCEPTED, JobStatus.PICKUP_SCHEDULED),
    DeliveryType.RETURN.value: (JobStatus.REPAIR_COMPLETED, JobStatus.READY_FOR_RETURN),
}

# Payment events: event type -> (outcome, Payment column used to find the row)
PAYMENT_EVENTS = {
    "paystack": {
        "charge.success": (PaymentStatus.COMPLETED, "provider_reference"),
        "charge.failed": (PaymentStatus.FAILED, "provider_reference"),
    },
    "stripe": {
        "checkout.completed": (PaymentStatus.COMPLETED, "provider_reference"),
        "checkout.session.completed": (PaymentStatus.COMPLETED, "provider_reference"),
        "payment_intent.succeeded": (PaymentStatus.COMPLETED, "transaction_id"),
        "payment_intent.payment_failed": (PaymentStatus.FAILED, "transaction_id"),
        "payment_intent.failed": (PaymentStatus.FAILED, "transaction_id"),
        "checkout.expired": (PaymentStatus.FAILED, "provider_reference"),
        "checkout.session.expired": (PaymentStatus.FAILED, "provider_reference"),
    },
}


@dataclass
class ReconcileResult:
    entity: str  # delivery, payment
    entity_id: Optional[int]
    status: Optional[str]
    changed: bool = False
    job_status: Optional[str] = None  # New job status when a side effect fired
    ignored: bool = False


def is_forward_progress(current: str, new: str) -> bool:
    """Whether a courier status may replace the current projection"""
    current_status = DeliveryStatus(current)
    new_status = DeliveryStatus(new)
    if current_status in TERMINAL_DELIVERY_STATUSES or new_status == current_status:
        return False
    if new_status in TERMINAL_DELIVERY_STATUSES and new_status != DeliveryStatus.DELIVERED:
        return True
    return DELIVERY_STATUS_RANK[new_status] > DELIVERY_STATUS_RANK[current_status]


class WebhookReconciler:
    def __init__(self, db: Session, delivery_commission_rate: Decimal = DELIVERY_COMMISSION_RATE):
        self.db = db
        self.deliveries = DeliveryRepository()
        self.delivery_commission_rate = delivery_commission_rate

    def reconcile_courier_event(
        self, provider: str, event: CourierEvent, now: Optional[datetime] = None
    ) -> ReconcileResult:
        now = now or datetime.utcnow()
        delivery = self.deliveries.get_by_provider_order(self.db, provider, event.provider_order_id)
        if not delivery:
            logger.warning(f"⚠️ {provider} webhook for unknown order {event.provider_order_id}")
            raise NotFoundError("Delivery not found for this courier order")

        new_status = event.status.value
        previous = delivery.delivery_status
        logger.info(
            f"📥 {provider} event for delivery {delivery.id}: {event.provider_status} → {new_status} "
            f"(current: {previous})"
        )

        self.deliveries.add_history(
            self.db,
            delivery.id,
            new_status,
            provider_status=event.provider_status,
            location=event.location,
            notes=event.notes,
        )

        changed = False
        if is_forward_progress(previous, new_status):
            values = {"delivery_status": new_status, "updated_at": now}
            for column in ("driver_name", "driver_phone", "vehicle_details"):
                value = getattr(event, column)
                if value:
                    values[column] = value
            result = self.db.execute(
                update(DeliveryRequest)
                .where(DeliveryRequest.id == delivery.id, DeliveryRequest.delivery_status == previous)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount == 1
            if not changed:
                logger.info(f"ℹ️ Delivery {delivery.id} moved concurrently, event kept in history only")
        else:
            logger.info(f"ℹ️ Delivery {delivery.id}: '{new_status}' after '{previous}' is not progress, history only")

        if event.status == DeliveryStatus.PICKED_UP:
            self._set_once(delivery.id, DeliveryRequest.actual_pickup_time, "actual_pickup_time", now)
        elif event.status == DeliveryStatus.DELIVERED:
            self._set_once(delivery.id, DeliveryRequest.actual_delivery_time, "actual_delivery_time", now)

        if event.actual_cost is not None:
            self._apply_actual_cost(delivery, event.actual_cost)

        self.db.flush()
        self.db.refresh(delivery)

        delivered = event.status == DeliveryStatus.DELIVERED and delivery.delivery_status == DeliveryStatus.DELIVERED
        if delivered and delivery.delivery_type == DeliveryType.RETURN.value:
            self._record_cash_collection(delivery, provider, now)

        self.db.commit()
        self.db.refresh(delivery)

        job_status = self._apply_job_side_effect(delivery, provider) if delivered else None
        return ReconcileResult(
            entity="delivery",
            entity_id=delivery.id,
            status=delivery.delivery_status,
            changed=changed,
            job_status=job_status,
        )

    def _set_once(self, delivery_id: int, column, name: str, moment: datetime) -> None:
        self.db.execute(
            update(DeliveryRequest)
            .where(DeliveryRequest.id == delivery_id, column.is_(None))
            .values(**{name: moment})
            .execution_options(synchronize_session=False)
        )

    def _apply_actual_cost(self, delivery: DeliveryRequest, actual_cost: Decimal) -> None:
        cost = quantize(actual_cost, delivery.currency)
        if delivery.actual_cost is not None and quantize(delivery.actual_cost, delivery.currency) == cost:
            return
        commission = apply_rate(cost, self.delivery_commission_rate, delivery.currency)
        self.db.execute(
            update(DeliveryRequest)
            .where(DeliveryRequest.id == delivery.id)
            .values(actual_cost=cost, app_delivery_commission=commission)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(
            update(DeliveryCommission)
            .where(DeliveryCommission.delivery_request_id == delivery.id)
            .values(delivery_cost=cost, commission_amount=commission, commission_rate=self.delivery_commission_rate)
            .execution_options(synchronize_session=False)
        )
        logger.info(f"💰 Delivery {delivery.id} actual cost {cost}, commission {commission}")

    def _record_cash_collection(self, delivery: DeliveryRequest, provider: str, moment: datetime) -> None:
        courier_class = COURIERS.get(provider)
        if courier_class and courier_class.driver_confirms_cash:
            self.db.execute(
                update(DeliveryRequest)
                .where(
                    DeliveryRequest.id == delivery.id,
                    DeliveryRequest.cash_payment_status != CashPaymentStatus.CONFIRMED.value,
                )
                .values(
                    cash_payment_status=CashPaymentStatus.CONFIRMED.value,
                    cash_payment_confirmed_at=moment,
                    cash_payment_confirmed_by="driver",
                )
                .execution_options(synchronize_session=False)
            )
            logger.info(f"💵 Cash payment for delivery {delivery.id} confirmed by {provider} driver")
        else:
            self.db.execute(
                update(DeliveryRequest)
                .where(
                    DeliveryRequest.id == delivery.id,
                    DeliveryRequest.cash_payment_status == CashPaymentStatus.PENDING.value,
                )
                .values(cash_payment_status=CashPaymentStatus.AWAITING_CONFIRMATION.value)
                .execution_options(synchronize_session=False)
            )
            logger.info(f"💵 Cash payment for delivery {delivery.id} awaiting customer confirmation")

    def _apply_job_side_effect(self, delivery: DeliveryRequest, provider: str) -> Optional[str]:
        expected, target = DELIVERED_LEG_JOB_EFFECTS[delivery.delivery_type]
        job = delivery.repair_job
        if job.job_status != expected.value:
            return None

        try:
            transition_job(
                self.db,
                job,
                target,
                TransitionCause.COURIER_WEBHOOK,
                note=f"{provider} delivered {delivery.delivery_type} leg (delivery {delivery.id})",
            )
            self.db.commit()
        except StateConflictError as e:
            logger.warning(f"⚠️ Skipped job side effect for delivery {delivery.id}: {e.detail}")
            return None
        return target.value

    def reconcile_payment_event(
        self, provider: str, event_type: str, data: dict, now: Optional[datetime] = None
    ) -> ReconcileResult:
        now = now or datetime.utcnow()
        handled = PAYMENT_EVENTS.get(provider, {}).get(event_type)
        if not handled:
            logger.info(f"ℹ️ Unhandled {provider} event type: {event_type}")
            return ReconcileResult(entity="payment", entity_id=None, status=None, ignored=True)

        outcome, lookup = handled
        key = data.get("reference") if provider == "paystack" else data.get("id")
        payment = None
        if key:
            payment = (
                self.db.query(Payment)
                .filter(Payment.provider == provider, getattr(Payment, lookup) == str(key))
                .first()
            )
        if not payment:
            logger.warning(f"⚠️ {provider} {event_type} for unknown payment {key}")
            raise NotFoundError("Payment not found")

        # Provider-side transaction id, kept for later payment_intent events
        transaction_id = data.get("payment_intent") if provider == "stripe" else data.get("id")
        if transaction_id and lookup != "transaction_id":
            self.db.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.transaction_id.is_(None))
                .values(transaction_id=str(transaction_id))
                .execution_options(synchronize_session=False)
            )

        if outcome == PaymentStatus.COMPLETED:
            changed = self._complete_payment(payment, now)
        else:
            reason = data.get("gateway_response") or data.get("last_payment_error") or event_type
            if isinstance(reason, dict):
                reason = reason.get("message") or event_type
            changed = self._fail_payment(payment, str(reason))

        self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id)
            .values(webhook_received_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(payment)

        logger.info(f"✅ Payment {payment.id} reconciled from {event_type}: {payment.payment_status}")
        return ReconcileResult(entity="payment", entity_id=payment.id, status=payment.payment_status, changed=changed)

    def _complete_payment(self, payment: Payment, moment: datetime) -> bool:
        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.payment_status != PaymentStatus.COMPLETED.value)
            .values(payment_status=PaymentStatus.COMPLETED.value, failure_reason=None)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.payment_date.is_(None))
            .values(payment_date=moment)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _fail_payment(self, payment: Payment, reason: str) -> bool:
        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.payment_status == PaymentStatus.PENDING.value)
            .values(payment_status=PaymentStatus.FAILED.value, failure_reason=reason)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(f"⚠️ Ignoring failure event for payment {payment.id} in '{payment.payment_status}'")
            return False
        return True
