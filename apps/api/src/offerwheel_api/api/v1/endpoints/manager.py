"""Manager console endpoints: customer lookup, direct grants and task review."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.api.dependencies.notifications import get_notification_dispatcher, schedule_notification
from offerwheel_api.api.dependencies.session import require_manager_session
from offerwheel_api.api.errors import result_http_error
from offerwheel_api.db.session import get_session
from offerwheel_api.models.manager import Manager
from offerwheel_api.models.social_task import TaskCompletionStatus
from offerwheel_api.services.bonus import DirectGrantService, TaskVerificationService
from offerwheel_api.services.notifications import NotificationDispatcher


router = APIRouter(prefix="/manager", tags=["manager"])


class CustomerSearchItem(BaseModel):
    id: UUID
    phone: str
    name: Optional[str]
    email: Optional[str]
    totalSpinsGranted: int
    remainingLimit: int


class DirectGrantRequest(BaseModel):
    comment: Optional[str] = Field(default=None, max_length=500)


class DirectGrantResponse(BaseModel):
    success: bool
    spinsGranted: int
    totalGrantedToUser: int
    remainingLimit: int


class PendingTaskItem(BaseModel):
    id: UUID
    taskId: UUID
    taskType: str
    targetUrl: Optional[str]
    status: TaskCompletionStatus
    submittedAt: datetime
    customerId: UUID
    phoneLast4: str


class ReviewRequest(BaseModel):
    comment: str = Field(..., max_length=1000)


class ReviewResponse(BaseModel):
    success: bool
    spinsGranted: int


@router.get("/customers/search", response_model=List[CustomerSearchItem])
async def search_customers(
    q: str = Query(..., min_length=1, max_length=64),
    manager: Manager = Depends(require_manager_session),
    db: AsyncSession = Depends(get_session),
) -> List[CustomerSearchItem]:
    results = await DirectGrantService(db).search_customers(manager.id, q)
    return [
        CustomerSearchItem(
            id=item.id,
            phone=item.phone,
            name=item.name,
            email=item.email,
            totalSpinsGranted=item.total_spins_granted,
            remainingLimit=item.remaining_limit,
        )
        for item in results
    ]


@router.post("/customers/{user_id}/grant-spin", response_model=DirectGrantResponse)
async def grant_direct_spin(
    user_id: UUID,
    payload: DirectGrantRequest | None = None,
    manager: Manager = Depends(require_manager_session),
    db: AsyncSession = Depends(get_session),
) -> DirectGrantResponse:
    """Grant one bonus spin, bounded by the manager's per-customer allowance."""

    result = await DirectGrantService(db).grant_direct_spin(
        manager.id,
        user_id,
        payload.comment if payload else None,
    )
    if not result.success:
        raise result_http_error(
            result.error_code,
            {
                "message": result.error,
                "code": result.error_code,
                "totalGrantedToUser": result.total_granted_to_user,
                "remainingLimit": result.remaining_limit,
            },
        )
    return DirectGrantResponse(
        success=True,
        spinsGranted=result.spins_granted,
        totalGrantedToUser=result.total_granted_to_user,
        remainingLimit=result.remaining_limit,
    )


@router.get("/tasks/pending", response_model=List[PendingTaskItem])
async def list_tasks(
    status_filter: Optional[TaskCompletionStatus] = Query(TaskCompletionStatus.PENDING, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    manager: Manager = Depends(require_manager_session),
    db: AsyncSession = Depends(get_session),
) -> List[PendingTaskItem]:
    tasks = await TaskVerificationService(db).list_pending_tasks(
        manager.id,
        status=status_filter,
        page=page,
        limit=limit,
    )
    return [
        PendingTaskItem(
            id=task.id,
            taskId=task.task_id,
            taskType=task.task_type,
            targetUrl=task.target_url,
            status=task.status,
            submittedAt=task.submitted_at,
            customerId=task.customer_id,
            phoneLast4=task.phone_last4,
        )
        for task in tasks
    ]


@router.post("/tasks/{completion_id}/approve", response_model=ReviewResponse)
async def approve_task(
    completion_id: UUID,
    payload: ReviewRequest,
    background_tasks: BackgroundTasks,
    manager: Manager = Depends(require_manager_session),
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ReviewResponse:
    result = await TaskVerificationService(db).approve_task(manager.id, completion_id, payload.comment)
    if not result.success:
        raise result_http_error(result.error_code, result.error)
    schedule_notification(background_tasks, dispatcher, result.notification)
    return ReviewResponse(success=True, spinsGranted=result.spins_granted)


@router.post("/tasks/{completion_id}/reject", response_model=ReviewResponse)
async def reject_task(
    completion_id: UUID,
    payload: ReviewRequest,
    background_tasks: BackgroundTasks,
    manager: Manager = Depends(require_manager_session),
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ReviewResponse:
    result = await TaskVerificationService(db).reject_task(manager.id, completion_id, payload.comment)
    if not result.success:
        raise result_http_error(result.error_code, result.error)
    schedule_notification(background_tasks, dispatcher, result.notification)
    return ReviewResponse(success=True, spinsGranted=0)
