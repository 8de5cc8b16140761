"""Repair job router - FastAPI endpoints for the job lifecycle"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationDispatcher, get_notification_dispatcher
from .schemas import (
    CancelJobRequest,
    JobResponse,
    QuoteCreate,
    QuoteResponseRequest,
    StatusHistoryResponse,
    StatusUpdateRequest,
)
from .service import JobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Repair Jobs"])


def get_job_service(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> JobService:
    """Dependency injection for JobService"""
    return JobService(db, notifier=notifier)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: int,
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return service.get_job(job_id, current_user)


@router.get("/{job_id}/history", response_model=list[StatusHistoryResponse])
async def get_job_history(
    job_id: int,
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    """Full status audit trail for a job"""
    return service.get_status_history(job_id, current_user)


@router.post("/{job_id}/quote", response_model=JobResponse)
async def provide_quote(
    job_id: int,
    data: QuoteCreate,
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return await service.provide_quote(job_id, data.quoted_cost, data.notes, current_user)


@router.post("/{job_id}/quote/respond", response_model=JobResponse)
async def respond_to_quote(
    job_id: int,
    data: QuoteResponseRequest,
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return await service.respond_to_quote(job_id, data.response, data.notes, current_user)


@router.post("/{job_id}/status", response_model=JobResponse)
async def update_job_status(
    job_id: int,
    data: StatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return await service.update_status(job_id, data.status, data.note, current_user)


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(
    job_id: int,
    data: CancelJobRequest,
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return await service.cancel_job(job_id, data.reason, current_user)
