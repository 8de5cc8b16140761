"""
Delivery orchestrator

Books courier legs for repair jobs. The pickup leg takes the appliance from
the customer to the repair center; the return leg brings it back. Couriers
are paid in cash by the customer and the platform records a commission on
every leg for separate settlement.

A DeliveryRequest is only written after the courier confirms the complete
booking. Courier APIs are not transactional, so records created remotely by
a booking that fails half way are left behind on the courier side.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import DELIVERY_COMMISSION_RATE
from ...enums import (
    CANCELLABLE_DELIVERY_STATUSES,
    CashPaymentStatus,
    DeliveryStatus,
    DeliveryType,
    JobStatus,
)
from ...errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from ...models import RepairJob, User
from ...models_delivery import DeliveryCommission, DeliveryRequest
from ...permissions import is_job_customer, is_staff_at_center, require_job_participant
from ...services.notification_service import NotificationDispatcher
from ...shared.money import Amount, apply_rate
from ..jobs.repository import JobRepository
from .couriers import CourierAdapter, CourierBooking, Party, get_courier
from .repository import DeliveryRepository

logger = logging.getLogger(__name__)

# Job status each leg can be booked from
LEG_REQUIRED_STATUS = {
    DeliveryType.PICKUP: JobStatus.QUOTE_ACCEPTED,
    DeliveryType.RETURN: JobStatus.REPAIR_COMPLETED,
}

QUOTE_VALIDITY = timedelta(minutes=15)


def _parse_leg(leg: str) -> DeliveryType:
    try:
        return DeliveryType(leg)
    except ValueError:
        raise ValidationError("Delivery type must be 'pickup' or 'return'")


class DeliveryOrchestrator:
    """Quotes, books, cancels and tracks courier legs"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        commission_rate: Decimal = DELIVERY_COMMISSION_RATE,
        courier_factory: Callable[[str], CourierAdapter] = get_courier,
    ):
        self.db = db
        self.repo = DeliveryRepository()
        self.notifier = notifier or NotificationDispatcher()
        self.commission_rate = commission_rate
        self.courier_factory = courier_factory

    def delivery_commission(self, cost: Amount, currency: Optional[str] = None) -> Decimal:
        """Platform cut of a cash-to-courier payment"""
        return apply_rate(cost, self.commission_rate, currency)

    def _get_job(self, job_id: int, user: User) -> RepairJob:
        job = JobRepository.get_job(self.db, job_id)
        if not job:
            raise NotFoundError("Repair job not found")
        require_job_participant(self.db, job, user)
        return job

    def _build_booking(
        self,
        job: RepairJob,
        leg: DeliveryType,
        package_size: str = "medium",
        scheduled_pickup_time: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> CourierBooking:
        center = JobRepository.get_center(self.db, job.repair_center_id)
        if not center or not center.address:
            raise ValidationError("Repair center address is required to book a courier")

        customer = Party(
            name=job.customer_name,
            phone=job.customer_phone,
            address=job.pickup_address,
            email=job.customer_email,
        )
        workshop = Party(name=center.name, phone=center.phone or "", address=center.address, email=center.email)

        description = " ".join(filter(None, [job.appliance_brand, job.appliance_model, job.appliance_type]))
        if leg == DeliveryType.PICKUP:
            pickup, dropoff = customer, workshop
        else:
            pickup, dropoff = workshop, customer

        return CourierBooking(
            reference=f"FXB-JOB-{job.id}-{leg.value}",
            pickup=pickup,
            dropoff=dropoff,
            description=f"{description} ({leg.value})",
            package_size=package_size,
            scheduled_pickup_time=scheduled_pickup_time,
            currency=job.currency,
            notes=notes,
        )

    async def get_quote(self, job_id: int, leg: str, provider: str, user: User, package_size: str = "medium") -> dict:
        """Lowest courier rate for a leg with the platform commission; nothing is persisted"""
        delivery_type = _parse_leg(leg)
        job = self._get_job(job_id, user)
        courier = self.courier_factory(provider)

        quote = await courier.quote(self._build_booking(job, delivery_type, package_size))
        commission = self.delivery_commission(quote.amount, quote.currency)
        logger.info(f"💰 {courier.display_name} quote for job {job.id} {leg}: {quote.amount} {quote.currency}")

        return {
            "provider": courier.name,
            "delivery_type": delivery_type.value,
            "delivery_cost": quote.amount,
            "app_commission": commission,
            "commission_rate": self.commission_rate,
            "total_customer_pays": quote.amount,
            "currency": quote.currency,
            "carrier": quote.carrier or courier.display_name,
            "estimated_duration": quote.estimated_duration,
            "quote_expires_at": datetime.utcnow() + QUOTE_VALIDITY,
        }

    async def create_delivery(
        self,
        job_id: int,
        leg: str,
        provider: str,
        user: User,
        package_size: str = "medium",
        scheduled_pickup_time: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> DeliveryRequest:
        delivery_type = _parse_leg(leg)
        job = self._get_job(job_id, user)

        required = LEG_REQUIRED_STATUS[delivery_type]
        if job.job_status != required.value:
            raise StateConflictError(
                f"A {delivery_type.value} delivery can only be booked when the job is '{required.value}'",
                job.job_status,
            )

        existing = self.repo.get_active_leg(self.db, job.id, delivery_type.value)
        if existing:
            raise StateConflictError(
                f"An active {delivery_type.value} delivery already exists for this job", existing.delivery_status
            )

        courier = self.courier_factory(provider)
        booking = self._build_booking(job, delivery_type, package_size, scheduled_pickup_time, notes)

        logger.info(f"🚚 Booking {courier.display_name} {delivery_type.value} leg for job {job.id}")
        result = await courier.book(booking)

        commission = self.delivery_commission(result.cost, result.currency)
        delivery = DeliveryRequest(
            repair_job_id=job.id,
            delivery_type=delivery_type.value,
            provider=courier.name,
            provider_order_id=result.provider_order_id,
            tracking_url=result.tracking_url,
            provider_response=result.raw,
            pickup_address=booking.pickup.address,
            pickup_contact_name=booking.pickup.name,
            pickup_contact_phone=booking.pickup.phone,
            delivery_address=booking.dropoff.address,
            delivery_contact_name=booking.dropoff.name,
            delivery_contact_phone=booking.dropoff.phone,
            estimated_cost=result.cost,
            app_delivery_commission=commission,
            currency=result.currency,
            delivery_status=DeliveryStatus.PENDING.value,
            cash_payment_status=CashPaymentStatus.PENDING.value,
            scheduled_pickup_time=scheduled_pickup_time,
            estimated_delivery_time=result.estimated_delivery_time,
            notes=notes,
        )

        try:
            self.db.add(delivery)
            self.db.flush()
            self.repo.add_history(
                self.db,
                delivery.id,
                DeliveryStatus.PENDING.value,
                notes=f"Delivery booked with {result.carrier or courier.display_name}",
            )
            self.db.add(
                DeliveryCommission(
                    delivery_request_id=delivery.id,
                    repair_job_id=job.id,
                    delivery_cost=result.cost,
                    commission_amount=commission,
                    commission_rate=self.commission_rate,
                    currency=result.currency,
                )
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record {courier.name} order {result.provider_order_id}: {e}")
            raise StateConflictError("This courier order is already recorded")

        self.db.refresh(delivery)
        logger.info(
            f"✅ Delivery {delivery.id} created for job {job.id}: {courier.name} order {delivery.provider_order_id}"
        )

        await self.notifier.notify(
            "delivery_booked",
            {
                "job_id": job.id,
                "delivery_type": delivery_type.value,
                "courier": result.carrier or courier.display_name,
                "estimated_cost": f"{result.cost} {result.currency}",
                "tracking_url": result.tracking_url,
            },
            [job.customer_email, *JobRepository.get_center_recipients(self.db, job.repair_center_id)],
        )
        return delivery

    def get_delivery(self, delivery_id: int, user: User) -> DeliveryRequest:
        delivery = self.repo.get_delivery(self.db, delivery_id)
        if not delivery:
            raise NotFoundError("Delivery not found")
        self._get_job(delivery.repair_job_id, user)
        return delivery

    async def cancel_delivery(self, delivery_id: int, user: User, reason: Optional[str] = None) -> DeliveryRequest:
        delivery = self.get_delivery(delivery_id, user)
        current = delivery.delivery_status
        if current not in CANCELLABLE_DELIVERY_STATUSES:
            raise StateConflictError("Delivery can no longer be cancelled", current)

        courier = self.courier_factory(delivery.provider)
        await courier.cancel(delivery.provider_order_id, reason)

        result = self.db.execute(
            update(DeliveryRequest)
            .where(DeliveryRequest.id == delivery.id, DeliveryRequest.delivery_status == current)
            .values(delivery_status=DeliveryStatus.CANCELLED.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self.db.refresh(delivery)
            logger.warning(f"⚠️ Delivery {delivery.id} changed while cancelling: now '{delivery.delivery_status}'")
            raise StateConflictError("Delivery was updated by the courier while cancelling", delivery.delivery_status)

        self.repo.add_history(
            self.db, delivery.id, DeliveryStatus.CANCELLED.value, notes=reason or "Cancelled by user"
        )
        self.db.commit()
        self.db.refresh(delivery)
        logger.info(f"✅ Delivery {delivery.id} cancelled by user {user.id}")

        job = delivery.repair_job
        await self.notifier.notify(
            "delivery_cancelled",
            {"job_id": job.id, "delivery_type": delivery.delivery_type, "reason": reason},
            [job.customer_email, *JobRepository.get_center_recipients(self.db, job.repair_center_id)],
        )
        return delivery

    def confirm_cash_payment(self, delivery_id: int, user: User, now: Optional[datetime] = None) -> DeliveryRequest:
        """Customer or repair center confirms the rider was paid in cash"""
        delivery = self.repo.get_delivery(self.db, delivery_id)
        if not delivery:
            raise NotFoundError("Delivery not found")

        job = delivery.repair_job
        if is_job_customer(job, user):
            confirmed_by = "customer"
        elif is_staff_at_center(self.db, user, job.repair_center_id):
            confirmed_by = "repair_center"
        else:
            raise AuthorizationError("Only the customer or repair center can confirm cash payment")

        result = self.db.execute(
            update(DeliveryRequest)
            .where(
                DeliveryRequest.id == delivery.id,
                DeliveryRequest.cash_payment_status == CashPaymentStatus.AWAITING_CONFIRMATION.value,
            )
            .values(
                cash_payment_status=CashPaymentStatus.CONFIRMED.value,
                cash_payment_confirmed_at=now or datetime.utcnow(),
                cash_payment_confirmed_by=confirmed_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self.db.refresh(delivery)
            raise StateConflictError("Cash payment is not awaiting confirmation", delivery.cash_payment_status)

        self.db.commit()
        self.db.refresh(delivery)
        logger.info(f"💵 Cash payment for delivery {delivery.id} confirmed by {confirmed_by}")
        return delivery
