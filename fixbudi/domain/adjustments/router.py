"""Cost adjustment router"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationDispatcher, get_notification_dispatcher
from .schemas import CostAdjustmentRequest, CostAdjustmentSummary
from .service import CostAdjustmentService

router = APIRouter(prefix="/jobs/{job_id}/cost-adjustment", tags=["Cost Adjustments"])


def get_cost_adjustment_service(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> CostAdjustmentService:
    """Dependency injection for CostAdjustmentService"""
    return CostAdjustmentService(db, notifier=notifier)


@router.get("", response_model=CostAdjustmentSummary)
async def get_cost_adjustment(
    job_id: int,
    current_user: User = Depends(get_current_user),
    service: CostAdjustmentService = Depends(get_cost_adjustment_service),
):
    """Current adjustment with the customer-facing total including the service fee"""
    return service.summarize(job_id, current_user)


@router.post("", response_model=CostAdjustmentSummary)
async def propose_cost_adjustment(
    job_id: int,
    data: CostAdjustmentRequest,
    current_user: User = Depends(get_current_user),
    service: CostAdjustmentService = Depends(get_cost_adjustment_service),
):
    await service.propose(job_id, data.final_cost, data.reason, current_user)
    return service.summarize(job_id, current_user)


@router.post("/approve", response_model=CostAdjustmentSummary)
async def approve_cost_adjustment(
    job_id: int,
    current_user: User = Depends(get_current_user),
    service: CostAdjustmentService = Depends(get_cost_adjustment_service),
):
    await service.approve(job_id, current_user)
    return service.summarize(job_id, current_user)


@router.post("/decline", response_model=CostAdjustmentSummary)
async def decline_cost_adjustment(
    job_id: int,
    current_user: User = Depends(get_current_user),
    service: CostAdjustmentService = Depends(get_cost_adjustment_service),
):
    await service.decline(job_id, current_user)
    return service.summarize(job_id, current_user)
