"""Atomic review operations on contributions.

Each operation changes the contribution's status, brings its classification
in line with that status and appends exactly one review-history row, all in
a single transaction. Failures never escape as exceptions: callers get
``{"success": False, "error": ..., "error_code": ...}`` and the session is
rolled back.
"""
import logging
import uuid
from typing import Any

import pydantic
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from plasticwatch.models.classification import Classification
from plasticwatch.models.contribution import Contribution
from plasticwatch.models.review_history import ReviewHistory
from plasticwatch.schemas.classification import ClassificationInput
from plasticwatch.services.access_control import Principal, is_admin
from plasticwatch.utils.exceptions import (
    AppException,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from plasticwatch.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "beach_name",
    "brand_suggestion",
    "plastic_type_suggestion",
    "product_type_suggestion",
    "notes",
)


def _require_admin(principal: Principal) -> None:
    if not is_admin(principal):
        raise AuthorizationError("Access denied: admin privileges required")


def _validate_classification(**fields: Any) -> ClassificationInput:
    try:
        return ClassificationInput(**fields)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = str(first["loc"][0]) if first["loc"] else None
        value = fields.get(field) if field else None
        if field == "confidence_level":
            message = f"Invalid confidence level: {value}"
        else:
            message = f"Invalid {field}: {first['msg']}"
        raise ValidationError(message, field=field) from exc


async def _lock_status(db: AsyncSession, contribution_id: str) -> str:
    """Return the contribution's current status, locking its row until commit.

    The row is written before it is read: SQLite ignores FOR UPDATE and only
    takes its write lock on the first write of a transaction, so a plain read
    could see a status another review is about to change.
    """
    touched = await db.execute(
        update(Contribution)
        .where(Contribution.id == contribution_id)
        .values(updated_at=utc_now_iso())
    )
    if touched.rowcount == 0:
        raise NotFoundError(f"Contribution not found: {contribution_id}")
    stmt = (
        select(Contribution.status)
        .where(Contribution.id == contribution_id)
        .with_for_update()
    )
    return await db.scalar(stmt)


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Classification upsert not supported on {dialect}")


async def _upsert_classification(
    db: AsyncSession,
    contribution_id: str,
    admin_id: str,
    data: ClassificationInput,
    now: str,
) -> str:
    fields = data.model_dump()
    insert = _insert_for(db)
    stmt = insert(Classification).values(
        id=str(uuid.uuid4()),
        contribution_id=contribution_id,
        classified_by=admin_id,
        classified_at=now,
        created_at=now,
        updated_at=now,
        **fields,
    )
    overwrite = {name: stmt.excluded[name] for name in fields}
    stmt = stmt.on_conflict_do_update(
        index_elements=[Classification.contribution_id],
        set_={
            **overwrite,
            "classified_by": stmt.excluded.classified_by,
            "classified_at": now,
            "updated_at": now,
        },
    ).returning(Classification.id)
    result = await db.execute(stmt)
    return result.scalar_one()


def _append_history(
    db: AsyncSession,
    contribution_id: str,
    admin_id: str,
    action: str,
    previous_status: str | None,
    new_status: str | None,
    now: str,
    changes: dict[str, Any] | None = None,
    reason: str | None = None,
) -> None:
    db.add(ReviewHistory(
        id=str(uuid.uuid4()),
        contribution_id=contribution_id,
        admin_id=admin_id,
        action=action,
        previous_status=previous_status,
        new_status=new_status,
        changes=changes,
        reason=reason,
        created_at=now,
    ))


async def _fail(db: AsyncSession, operation: str, contribution_id: str, exc: Exception) -> dict:
    await db.rollback()
    if isinstance(exc, AppException):
        logger.warning("%s %s refused: %s", operation, contribution_id, exc.message)
        return {"success": False, "error": exc.message, "error_code": exc.code}
    logger.exception("%s %s failed", operation, contribution_id)
    return {"success": False, "error": str(exc) or exc.__class__.__name__, "error_code": "internal"}


async def classify_contribution(
    db: AsyncSession,
    principal: Principal,
    contribution_id: str,
    admin_id: str,
    brand: str,
    manufacturer: str,
    plastic_type: str | None = None,
    admin_notes: str | None = None,
    confidence_level: str = "medium",
    product_type: str | None = None,
    beach_id: int | None = None,
    company_id: int | None = None,
    beach_latitude: float | None = None,
    beach_longitude: float | None = None,
) -> dict:
    """Mark a contribution classified and upsert its classification.

    Logged as ``reclassified`` when the contribution was already classified.
    """
    try:
        _require_admin(principal)
        data = _validate_classification(
            brand=brand,
            manufacturer=manufacturer,
            plastic_type=plastic_type,
            admin_notes=admin_notes,
            confidence_level=confidence_level,
            product_type=product_type,
            beach_id=beach_id,
            company_id=company_id,
            beach_latitude=beach_latitude,
            beach_longitude=beach_longitude,
        )
        previous_status = await _lock_status(db, contribution_id)
        now = utc_now_iso()

        await db.execute(
            update(Contribution)
            .where(Contribution.id == contribution_id)
            .values(status="classified", updated_at=now)
        )
        classification_id = await _upsert_classification(db, contribution_id, admin_id, data, now)
        _append_history(
            db,
            contribution_id,
            admin_id,
            action="reclassified" if previous_status == "classified" else "classified",
            previous_status=previous_status,
            new_status="classified",
            now=now,
            changes=data.model_dump(),
        )
        await db.commit()
    except Exception as exc:
        return await _fail(db, "classify", contribution_id, exc)

    logger.info(
        "Contribution %s classified by %s (previous status %s)",
        contribution_id, admin_id, previous_status,
    )
    return {
        "success": True,
        "classification_id": classification_id,
        "previous_status": previous_status,
    }


async def reject_contribution(
    db: AsyncSession,
    principal: Principal,
    contribution_id: str,
    admin_id: str,
    reason: str | None = None,
) -> dict:
    """Mark a contribution rejected and drop any classification it had."""
    try:
        _require_admin(principal)
        previous_status = await _lock_status(db, contribution_id)
        now = utc_now_iso()

        await db.execute(
            update(Contribution)
            .where(Contribution.id == contribution_id)
            .values(status="rejected", updated_at=now)
        )
        await db.execute(
            delete(Classification).where(Classification.contribution_id == contribution_id)
        )
        _append_history(
            db,
            contribution_id,
            admin_id,
            action="rejected",
            previous_status=previous_status,
            new_status="rejected",
            now=now,
            reason=reason,
        )
        await db.commit()
    except Exception as exc:
        return await _fail(db, "reject", contribution_id, exc)

    logger.info("Contribution %s rejected by %s", contribution_id, admin_id)
    return {"success": True, "previous_status": previous_status}


async def update_contribution(
    db: AsyncSession,
    principal: Principal,
    contribution_id: str,
    admin_id: str,
    changes: dict[str, Any],
) -> dict:
    """Apply an admin edit to a contribution's free-text fields.

    Only fields whose value actually changes are written and recorded. The
    status is left alone; it only moves through classify and reject.
    """
    try:
        _require_admin(principal)
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Field cannot be updated: {unknown[0]}", field=unknown[0])

        previous_status = await _lock_status(db, contribution_id)
        contribution = await db.get(Contribution, contribution_id)
        diff = {
            name: {"old": getattr(contribution, name), "new": value}
            for name, value in changes.items()
            if getattr(contribution, name) != value
        }
        now = utc_now_iso()
        if diff:
            await db.execute(
                update(Contribution)
                .where(Contribution.id == contribution_id)
                .values(updated_at=now, **{name: d["new"] for name, d in diff.items()})
            )
        _append_history(
            db,
            contribution_id,
            admin_id,
            action="updated",
            previous_status=previous_status,
            new_status=previous_status,
            now=now,
            changes=diff,
        )
        await db.commit()
    except Exception as exc:
        return await _fail(db, "update", contribution_id, exc)

    logger.info("Contribution %s updated by %s: %s", contribution_id, admin_id, sorted(diff))
    return {"success": True, "previous_status": previous_status, "changes": diff}
