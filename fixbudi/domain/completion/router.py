"""Completion confirmation router"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationDispatcher, get_notification_dispatcher
from .schemas import ConfirmationRequest, ConfirmationResponse
from .service import CompletionService

router = APIRouter(prefix="/jobs/{job_id}/confirmations", tags=["Job Completion"])


def get_completion_service(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> CompletionService:
    """Dependency injection for CompletionService"""
    return CompletionService(db, notifier=notifier)


@router.post("", response_model=ConfirmationResponse)
async def confirm_job_completion(
    job_id: int,
    data: ConfirmationRequest,
    current_user: User = Depends(get_current_user),
    service: CompletionService = Depends(get_completion_service),
):
    """Customer confirms device return, then satisfaction; the second confirmation completes the job"""
    return await service.confirm(
        job_id,
        data.confirmation_type,
        current_user,
        rating=data.satisfaction_rating,
        feedback=data.satisfaction_feedback,
    )
