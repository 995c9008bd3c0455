"""Aggregate statistics for the dashboards.

Everything is computed on demand from the base tables. Timestamps are stored
as ISO-8601 UTC strings, so the first ten characters are the calendar date
and string comparison orders them chronologically.
"""
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from plasticwatch.models.classification import Classification
from plasticwatch.models.contribution import Contribution
from plasticwatch.models.review_history import ReviewHistory

MIN_BEACH_CONTRIBUTIONS = 3


def _count_where(condition):
    return func.count(case((condition, 1)))


async def contribution_overview(db: AsyncSession) -> dict:
    row = (await db.execute(
        select(
            func.count(Contribution.id),
            _count_where(Contribution.status == "pending"),
            _count_where(Contribution.status == "classified"),
            _count_where(Contribution.status == "rejected"),
        )
    )).one()
    return {"total": row[0], "pending": row[1], "classified": row[2], "rejected": row[3]}


async def daily_stats(db: AsyncSession) -> list[dict]:
    day = func.substr(Contribution.created_at, 1, 10)
    result = await db.execute(
        select(
            day.label("date"),
            func.count(Contribution.id),
            _count_where(Contribution.status == "pending"),
            _count_where(Contribution.status == "classified"),
            _count_where(Contribution.status == "rejected"),
            func.count(distinct(Contribution.user_id)),
            func.count(distinct(Contribution.beach_name)),
        )
        .group_by(day)
        .order_by(day.desc())
    )
    return [
        {
            "date": r[0],
            "total_contributions": r[1],
            "pending": r[2],
            "classified": r[3],
            "rejected": r[4],
            "unique_users": r[5],
            "unique_beaches": r[6],
        }
        for r in result.all()
    ]


async def brand_stats(db: AsyncSession) -> list[dict]:
    result = await db.execute(
        select(
            Classification.brand,
            Classification.manufacturer,
            func.count(Classification.id),
            func.count(distinct(Classification.classified_by)),
            func.min(Classification.classified_at),
            func.max(Classification.classified_at),
            _count_where(Classification.confidence_level == "high"),
            _count_where(Classification.confidence_level == "medium"),
            _count_where(Classification.confidence_level == "low"),
        )
        .group_by(Classification.brand, Classification.manufacturer)
        .order_by(func.count(Classification.id).desc(), Classification.brand)
    )
    rows = result.all()

    types_result = await db.execute(
        select(Classification.brand, Classification.manufacturer, Classification.plastic_type)
        .where(Classification.plastic_type.is_not(None))
        .distinct()
    )
    plastic_types: dict[tuple[str, str], list[str]] = {}
    for brand, manufacturer, plastic_type in types_result.all():
        plastic_types.setdefault((brand, manufacturer), []).append(plastic_type)

    stats = []
    for r in rows:
        counts = {"high": r[6], "medium": r[7], "low": r[8]}
        stats.append({
            "brand": r[0],
            "manufacturer": r[1],
            "classification_count": r[2],
            "admin_count": r[3],
            "first_classified": r[4],
            "last_classified": r[5],
            "most_common_confidence": max(counts, key=counts.get),
            "high_confidence_count": counts["high"],
            "medium_confidence_count": counts["medium"],
            "low_confidence_count": counts["low"],
            "plastic_types": sorted(plastic_types.get((r[0], r[1]), [])),
        })
    return stats


async def beach_stats(db: AsyncSession, min_contributions: int = MIN_BEACH_CONTRIBUTIONS) -> list[dict]:
    result = await db.execute(
        select(
            Contribution.beach_name,
            func.count(Contribution.id),
            _count_where(Contribution.status == "classified"),
            func.count(distinct(Contribution.user_id)),
            func.min(Contribution.created_at),
            func.max(Contribution.created_at),
            func.avg(Contribution.latitude),
            func.avg(Contribution.longitude),
        )
        .where(Contribution.beach_name.is_not(None))
        .group_by(Contribution.beach_name)
        .having(func.count(Contribution.id) >= min_contributions)
        .order_by(func.count(Contribution.id).desc(), Contribution.beach_name)
    )
    return [
        {
            "beach_name": r[0],
            "contribution_count": r[1],
            "classified_count": r[2],
            "unique_contributors": r[3],
            "first_contribution": r[4],
            "last_contribution": r[5],
            "avg_latitude": r[6],
            "avg_longitude": r[7],
        }
        for r in result.all()
    ]


async def admin_stats(db: AsyncSession, now: datetime | None = None) -> list[dict]:
    now = now or datetime.now(timezone.utc)
    week_ago = (now - timedelta(days=7)).isoformat()
    month_ago = (now - timedelta(days=30)).isoformat()

    reviewed = func.count(distinct(ReviewHistory.contribution_id))
    classified = _count_where(ReviewHistory.action == "classified")
    result = await db.execute(
        select(
            ReviewHistory.admin_id,
            reviewed,
            classified,
            _count_where(ReviewHistory.action == "rejected"),
            _count_where(ReviewHistory.action == "reclassified"),
            func.min(ReviewHistory.created_at),
            func.max(ReviewHistory.created_at),
            _count_where(ReviewHistory.created_at >= week_ago),
            _count_where(ReviewHistory.created_at >= month_ago),
        )
        .group_by(ReviewHistory.admin_id)
        .order_by(reviewed.desc(), ReviewHistory.admin_id)
    )
    return [
        {
            "admin_id": r[0],
            "total_reviewed": r[1],
            "classified_count": r[2],
            "rejected_count": r[3],
            "reclassified_count": r[4],
            "approval_rate": round(r[2] / r[1] * 100, 2) if r[1] else None,
            "first_review": r[5],
            "last_review": r[6],
            "reviews_last_7_days": r[7],
            "reviews_last_30_days": r[8],
        }
        for r in result.all()
    ]
