from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.api.dependencies.session import require_customer_session
from offerwheel_api.api.errors import promotion_http_error
from offerwheel_api.db.session import get_session
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.models.social_task import TaskCompletionStatus
from offerwheel_api.services.bonus import TaskVerificationService
from offerwheel_api.services.errors import PromotionError


router = APIRouter(prefix="/social-tasks", tags=["social-tasks"])


class TaskClaimResponse(BaseModel):
    id: UUID
    taskId: UUID
    status: TaskCompletionStatus
    claimedAt: datetime


@router.post("/{task_id}/claim", response_model=TaskClaimResponse, status_code=202)
async def claim_task(
    task_id: UUID,
    customer: EndUser = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
) -> TaskClaimResponse:
    """Submit a completed social task for manager review."""

    try:
        completion = await TaskVerificationService(db).claim_task(customer.id, task_id)
    except PromotionError as exc:
        raise promotion_http_error(exc) from exc
    return TaskClaimResponse(
        id=completion.id,
        taskId=completion.task_id,
        status=completion.status,
        claimedAt=completion.claimed_at,
    )
