"""
Payout Routes for repair center settlement
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationDispatcher, get_notification_dispatcher
from .payments import RepairPaymentService
from .schemas import (
    BatchPayoutRequest,
    BatchPayoutResult,
    EarningsSummary,
    PaymentCheckoutRequest,
    PaymentCheckoutResponse,
    PayoutResponse,
    ProcessPayoutRequest,
)
from .service import SettlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payouts", tags=["Payouts"])
payments_router = APIRouter(prefix="/jobs", tags=["Repair Payments"])


def get_settlement_service(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SettlementService:
    """Dependency injection for SettlementService"""
    return SettlementService(db, notifier=notifier)


def get_payment_service(db: Session = Depends(get_db)) -> RepairPaymentService:
    return RepairPaymentService(db)


@router.get("", response_model=list[PayoutResponse])
async def list_payouts(
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: SettlementService = Depends(get_settlement_service),
):
    """All payouts, optionally filtered by status (admin only)"""
    return service.list_payouts(status, current_user)


@router.post("/batch", response_model=BatchPayoutResult)
async def batch_process_payouts(
    data: BatchPayoutRequest,
    current_user: User = Depends(get_current_user),
    service: SettlementService = Depends(get_settlement_service),
):
    return await service.process_batch(
        data.payout_ids, data.payout_method, data.payout_reference, data.notes, current_user
    )


@router.post("/{payout_id}/process", response_model=PayoutResponse)
async def process_payout(
    payout_id: int,
    data: ProcessPayoutRequest,
    current_user: User = Depends(get_current_user),
    service: SettlementService = Depends(get_settlement_service),
):
    return await service.process_payout(
        payout_id, data.payout_reference, data.payout_method, data.notes, current_user
    )


@router.get("/centers/{center_id}", response_model=list[PayoutResponse])
async def get_center_payouts(
    center_id: int,
    current_user: User = Depends(get_current_user),
    service: SettlementService = Depends(get_settlement_service),
):
    return service.center_payouts(center_id, current_user)


@router.get("/centers/{center_id}/summary", response_model=EarningsSummary)
async def get_center_earnings(
    center_id: int,
    current_user: User = Depends(get_current_user),
    service: SettlementService = Depends(get_settlement_service),
):
    return service.earnings_summary(center_id, current_user)


@payments_router.post("/{job_id}/payments", response_model=PaymentCheckoutResponse)
async def create_repair_payment(
    job_id: int,
    data: Optional[PaymentCheckoutRequest] = None,
    current_user: User = Depends(get_current_user),
    service: RepairPaymentService = Depends(get_payment_service),
):
    """Start a checkout for the repair cost plus service fee (Paystack unless the body picks Stripe)"""
    provider = data.provider if data else "paystack"
    payment = await service.create_payment(job_id, current_user, provider=provider)
    return PaymentCheckoutResponse(
        payment_id=payment.id,
        provider=payment.provider,
        reference=payment.provider_reference,
        checkout_url=payment.checkout_url,
        amount=payment.amount,
        currency=payment.currency,
    )
