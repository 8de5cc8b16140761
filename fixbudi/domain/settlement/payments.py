"""Repair payment service - Starts customer checkouts for completed repairs"""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...config import FRONTEND_URL, PLATFORM_FEE_RATE
from ...enums import JobStatus, PaymentStatus
from ...errors import NotFoundError, StateConflictError, ValidationError
from ...models import User
from ...models_payment import Payment
from ...permissions import require_job_customer
from ...shared.money import to_minor_units
from ..adjustments.service import customer_total
from ..jobs.repository import JobRepository
from .paystack import PaystackService
from .repository import SettlementRepository
from .stripe_checkout import StripeCheckoutService

logger = logging.getLogger(__name__)

# Customers pay once the repair is done and before the appliance comes back
PAYABLE_STATUSES = {JobStatus.REPAIR_COMPLETED.value, JobStatus.READY_FOR_RETURN.value}

CHECKOUT_PROVIDERS = ("paystack", "stripe")


class RepairPaymentService:
    def __init__(
        self,
        db: Session,
        paystack: Optional[PaystackService] = None,
        stripe: Optional[StripeCheckoutService] = None,
        platform_fee_rate: Decimal = PLATFORM_FEE_RATE,
    ):
        self.db = db
        self.repo = SettlementRepository()
        self.paystack = paystack or PaystackService()
        self.stripe = stripe or StripeCheckoutService()
        self.platform_fee_rate = platform_fee_rate

    async def create_payment(self, job_id: int, user: User, provider: str = "paystack") -> Payment:
        """Open a Paystack or Stripe checkout for the repair cost plus the platform service fee"""
        if provider not in CHECKOUT_PROVIDERS:
            raise ValidationError(f"Unknown payment provider '{provider}'")

        job = JobRepository.get_job(self.db, job_id)
        if not job:
            raise NotFoundError("Repair job not found")
        require_job_customer(job, user)

        if job.job_status not in PAYABLE_STATUSES:
            raise StateConflictError("Payment is only possible after the repair is completed", job.job_status)
        if job.has_pending_adjustment:
            raise StateConflictError("Resolve the pending cost adjustment before paying")
        if JobRepository.get_latest_completed_payment(self.db, job.id):
            raise StateConflictError("This repair has already been paid")

        cost = job.settlement_cost
        if cost is None:
            raise StateConflictError("This repair has no agreed cost yet", job.job_status)

        breakdown = customer_total(cost, job.currency, self.platform_fee_rate)
        amount_minor = to_minor_units(breakdown["total"], job.currency)
        metadata = {"repair_job_id": job.id, "user_id": user.id, "payment_type": "repair_service"}
        return_url = f"{FRONTEND_URL}/repair-jobs/{job.id}"

        if provider == "stripe":
            session = await self.stripe.create_checkout_session(
                email=job.customer_email,
                amount_minor=amount_minor,
                currency=job.currency,
                product_name=f"Repair Service - {job.appliance_type}",
                success_url=f"{return_url}?payment=success",
                cancel_url=f"{return_url}?payment=cancelled",
                metadata=metadata,
            )
        else:
            session = await self.paystack.initialize_transaction(
                email=job.customer_email,
                amount_minor=amount_minor,
                reference=f"FXB-{job.id}-{uuid.uuid4().hex[:12]}",
                currency=job.currency,
                callback_url=f"{return_url}?payment=success",
                metadata=metadata,
            )

        payment = self.repo.create_payment(
            self.db,
            repair_job_id=job.id,
            user_id=user.id,
            provider=provider,
            provider_reference=session.reference,
            checkout_url=session.authorization_url,
            amount=breakdown["total"],
            currency=job.currency,
            payment_status=PaymentStatus.PENDING.value,
        )
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"💰 Payment {payment.id} opened for job {job.id}: {payment.amount} {payment.currency} via {provider}")
        return payment
