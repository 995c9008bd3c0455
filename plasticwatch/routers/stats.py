from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from plasticwatch.database import get_db
from plasticwatch.dependencies import require_principal
from plasticwatch.services import statistics
from plasticwatch.services.access_control import Principal, is_admin
from plasticwatch.utils.exceptions import AuthorizationError
from plasticwatch.utils.response import success_response

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/overview")
async def get_overview(db: AsyncSession = Depends(get_db)):
    return success_response(data=await statistics.contribution_overview(db))


@router.get("/daily")
async def get_daily(db: AsyncSession = Depends(get_db)):
    return success_response(data=await statistics.daily_stats(db))


@router.get("/brands")
async def get_brands(db: AsyncSession = Depends(get_db)):
    return success_response(data=await statistics.brand_stats(db))


@router.get("/beaches")
async def get_beaches(
    min_contributions: int = Query(default=statistics.MIN_BEACH_CONTRIBUTIONS, ge=1),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await statistics.beach_stats(db, min_contributions))


@router.get("/admins")
async def get_admins(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    if not is_admin(principal):
        raise AuthorizationError("Access denied: admin privileges required")
    return success_response(data=await statistics.admin_stats(db))
