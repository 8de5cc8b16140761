"""Delivery router - Courier legs for repair jobs"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationDispatcher, get_notification_dispatcher
from .orchestrator import DeliveryOrchestrator
from .schemas import (
    DeliveryCancelRequest,
    DeliveryCreate,
    DeliveryQuoteRequest,
    DeliveryQuoteResponse,
    DeliveryResponse,
)

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])


def get_delivery_orchestrator(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> DeliveryOrchestrator:
    """Dependency injection for DeliveryOrchestrator"""
    return DeliveryOrchestrator(db, notifier=notifier)


@router.post("/quote", response_model=DeliveryQuoteResponse)
async def get_delivery_quote(
    data: DeliveryQuoteRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: DeliveryOrchestrator = Depends(get_delivery_orchestrator),
):
    """Cheapest courier rate for a leg, including the 5% platform commission"""
    return await orchestrator.get_quote(
        data.repair_job_id, data.delivery_type, data.provider, current_user, package_size=data.package_size
    )


@router.post("", response_model=DeliveryResponse)
async def create_delivery(
    data: DeliveryCreate,
    current_user: User = Depends(get_current_user),
    orchestrator: DeliveryOrchestrator = Depends(get_delivery_orchestrator),
):
    return await orchestrator.create_delivery(
        data.repair_job_id,
        data.delivery_type,
        data.provider,
        current_user,
        package_size=data.package_size,
        scheduled_pickup_time=data.scheduled_pickup_time,
        notes=data.notes,
    )


@router.get("/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(
    delivery_id: int,
    current_user: User = Depends(get_current_user),
    orchestrator: DeliveryOrchestrator = Depends(get_delivery_orchestrator),
):
    return orchestrator.get_delivery(delivery_id, current_user)


@router.post("/{delivery_id}/cancel", response_model=DeliveryResponse)
async def cancel_delivery(
    delivery_id: int,
    data: DeliveryCancelRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: DeliveryOrchestrator = Depends(get_delivery_orchestrator),
):
    """Cancel a courier booking before the driver has arrived"""
    return await orchestrator.cancel_delivery(delivery_id, current_user, reason=data.reason)


@router.post("/{delivery_id}/confirm-cash", response_model=DeliveryResponse)
async def confirm_cash_payment(
    delivery_id: int,
    current_user: User = Depends(get_current_user),
    orchestrator: DeliveryOrchestrator = Depends(get_delivery_orchestrator),
):
    return orchestrator.confirm_cash_payment(delivery_id, current_user)
