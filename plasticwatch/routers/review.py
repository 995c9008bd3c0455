from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from plasticwatch.database import get_db
from plasticwatch.dependencies import get_principal, require_principal
from plasticwatch.models.classification import Classification
from plasticwatch.models.review_history import REVIEW_ACTIONS, ReviewHistory
from plasticwatch.routers.contributions import engine_response, load_readable
from plasticwatch.schemas.classification import (
    ClassificationResponse,
    ClassifyRequest,
    RejectRequest,
    ReviewHistoryResponse,
)
from plasticwatch.services.access_control import (
    Principal,
    can_read_classification,
    can_read_review_history,
)
from plasticwatch.services.classification_engine import classify_contribution, reject_contribution
from plasticwatch.utils.exceptions import AuthorizationError, NotFoundError, ValidationError
from plasticwatch.utils.response import success_response

router = APIRouter(tags=["review"])


@router.post("/contributions/{contribution_id}/classify")
async def classify(
    contribution_id: str,
    payload: ClassifyRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    result = await classify_contribution(
        db,
        principal,
        contribution_id,
        admin_id=principal.user_id,
        **payload.model_dump(),
    )
    return engine_response(result)


@router.post("/contributions/{contribution_id}/reject")
async def reject(
    contribution_id: str,
    payload: RejectRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    result = await reject_contribution(
        db,
        principal,
        contribution_id,
        admin_id=principal.user_id,
        reason=payload.reason,
    )
    return engine_response(result)


@router.get("/contributions/{contribution_id}/classification")
async def get_classification(
    contribution_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    if not can_read_classification(principal):
        raise AuthorizationError()
    result = await db.execute(
        select(Classification).where(Classification.contribution_id == contribution_id)
    )
    classification = result.scalars().first()
    if classification is None:
        raise NotFoundError("Classification not found")
    return success_response(data=ClassificationResponse.model_validate(classification).model_dump())


@router.get("/contributions/{contribution_id}/history")
async def get_contribution_history(
    contribution_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    if not can_read_review_history(principal):
        raise AuthorizationError("Access denied: admin privileges required")
    await load_readable(db, principal, contribution_id)

    result = await db.execute(
        select(ReviewHistory)
        .where(ReviewHistory.contribution_id == contribution_id)
        .order_by(ReviewHistory.created_at)
    )
    data = [ReviewHistoryResponse.model_validate(h).model_dump() for h in result.scalars().all()]
    return success_response(data=data)


@router.get("/review-history")
async def list_review_history(
    action: str | None = Query(default=None),
    admin_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    if not can_read_review_history(principal):
        raise AuthorizationError("Access denied: admin privileges required")

    stmt = select(ReviewHistory)
    if action is not None:
        if action not in REVIEW_ACTIONS:
            raise ValidationError(f"Invalid action: {action}", field="action")
        stmt = stmt.where(ReviewHistory.action == action)
    if admin_id is not None:
        stmt = stmt.where(ReviewHistory.admin_id == admin_id)
    stmt = stmt.order_by(ReviewHistory.created_at.desc()).limit(limit).offset(offset)

    result = await db.execute(stmt)
    data = [ReviewHistoryResponse.model_validate(h).model_dump() for h in result.scalars().all()]
    return success_response(data=data)
