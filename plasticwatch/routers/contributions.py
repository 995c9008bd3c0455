import logging
import uuid

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from plasticwatch.database import get_db
from plasticwatch.dependencies import get_principal, require_principal
from plasticwatch.models.contribution import CONTRIBUTION_STATUSES, Contribution
from plasticwatch.schemas.contribution import (
    ContributionCreate,
    ContributionResponse,
    ContributionUpdate,
)
from plasticwatch.services import classification_engine
from plasticwatch.services.access_control import (
    Principal,
    can_create_contribution,
    can_delete_contribution,
    can_read_contribution,
    can_update_contribution,
    contribution_visibility,
    is_admin,
)
from plasticwatch.utils.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from plasticwatch.utils.response import error_response, success_response
from plasticwatch.utils.timestamps import to_utc_iso, utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contributions", tags=["contributions"])

ENGINE_FAILURE_STATUS = {"authorization": 403, "validation": 422, "not_found": 404}


def engine_response(result: dict) -> dict | JSONResponse:
    """Render a classification engine result as an API response."""
    if result["success"]:
        return success_response(data=result)
    return JSONResponse(
        status_code=ENGINE_FAILURE_STATUS.get(result.get("error_code"), 500),
        content=error_response(result["error"], data=result),
    )


async def load_readable(db: AsyncSession, principal: Principal, contribution_id: str) -> Contribution:
    contribution = await db.get(Contribution, contribution_id)
    # Rows the caller may not read are reported as missing
    if contribution is None or not can_read_contribution(principal, contribution):
        raise NotFoundError("Contribution not found")
    return contribution


@router.post("", status_code=201)
async def create_contribution(
    payload: ContributionCreate,
    response: Response,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    submitter = payload.user_id or principal.user_id
    if not can_create_contribution(principal, submitter):
        raise AuthorizationError("Contributions can only be submitted for yourself")

    contribution_id = payload.id or str(uuid.uuid4())

    # Idempotent create: a retried submission returns the stored row
    existing = await db.get(Contribution, contribution_id)
    if existing:
        if existing.user_id != principal.user_id:
            raise ConflictError("Contribution id already in use")
        response.status_code = 200
        return success_response(data=ContributionResponse.model_validate(existing).model_dump())

    now = utc_now_iso()
    contribution = Contribution(
        id=contribution_id,
        user_id=principal.user_id,
        status="pending",
        created_at=to_utc_iso(payload.created_at) if payload.created_at else now,
        updated_at=now,
        **payload.model_dump(exclude={"id", "user_id", "created_at"}),
    )
    db.add(contribution)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Contribution id already in use")
    await db.refresh(contribution)

    logger.info("Contribution %s created by %s", contribution.id, principal.user_id)
    return success_response(data=ContributionResponse.model_validate(contribution).model_dump())


@router.get("")
async def list_contributions(
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Contribution).where(contribution_visibility(principal))
    if status is not None:
        if status not in CONTRIBUTION_STATUSES:
            raise ValidationError(f"Invalid status: {status}", field="status")
        stmt = stmt.where(Contribution.status == status)
    stmt = stmt.order_by(Contribution.created_at.desc()).limit(limit).offset(offset)

    result = await db.execute(stmt)
    data = [ContributionResponse.model_validate(c).model_dump() for c in result.scalars().all()]
    return success_response(data=data)


@router.get("/{contribution_id}")
async def get_contribution(
    contribution_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    contribution = await load_readable(db, principal, contribution_id)
    return success_response(data=ContributionResponse.model_validate(contribution).model_dump())


@router.patch("/{contribution_id}")
async def update_contribution(
    contribution_id: str,
    payload: ContributionUpdate,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    contribution = await load_readable(db, principal, contribution_id)
    if not can_update_contribution(principal, contribution):
        raise AuthorizationError("Only pending contributions can be edited by their owner")

    changes = payload.model_dump(exclude_unset=True)

    if is_admin(principal):
        # Admin edits are audited like any other review action
        result = await classification_engine.update_contribution(
            db, principal, contribution_id, principal.user_id, changes
        )
        if not result["success"]:
            return engine_response(result)
    else:
        for name, value in changes.items():
            setattr(contribution, name, value)
        await db.commit()

    await db.refresh(contribution)
    return success_response(data=ContributionResponse.model_validate(contribution).model_dump())


@router.delete("/{contribution_id}")
async def delete_contribution(
    contribution_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    contribution = await load_readable(db, principal, contribution_id)
    if not can_delete_contribution(principal, contribution):
        raise AuthorizationError("Only pending contributions can be deleted by their owner")

    await db.delete(contribution)
    try:
        await db.commit()
    except IntegrityError:
        # Admin edits leave review history, which pins the row
        await db.rollback()
        raise ConflictError("Contribution has review history and cannot be deleted")

    logger.info("Contribution %s deleted by %s", contribution_id, principal.user_id)
    return success_response(data={"id": contribution_id})
