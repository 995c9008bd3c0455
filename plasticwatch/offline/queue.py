"""Device-local durable queue of submissions waiting for connectivity.

Items stay on disk until a sync pass removes them after the remote insert
succeeded, or until they are purged explicitly. Read paths favour keeping the
UI usable: a storage failure is logged and reported as an empty result.
"""
import logging
import os
import time
import uuid
from typing import Any, get_args

from sqlalchemy import delete, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from plasticwatch.config import settings
from plasticwatch.database import engine_options, normalize_database_url
from plasticwatch.offline.models import IMAGE_SLOTS, QueueBase, QueuedItem
from plasticwatch.schemas.offline import (
    QueueStats,
    QueueStatus,
    QueuedContribution,
    QueuedFormData,
    QueuedImage,
    QueuedImages,
)

logger = logging.getLogger(__name__)

QUEUE_STATUSES: tuple[str, ...] = get_args(QueueStatus)


def generate_local_id() -> str:
    return f"offline_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _image_columns(images: QueuedImages) -> dict[str, Any]:
    columns: dict[str, Any] = {}
    for slot in IMAGE_SLOTS:
        image = getattr(images, slot)
        columns[slot] = image.blob if image else None
        columns[f"{slot}_name"] = image.name if image else None
    return columns


def _to_queued(row: QueuedItem) -> QueuedContribution:
    images = {
        slot: QueuedImage(blob=getattr(row, slot), name=getattr(row, f"{slot}_name"))
        for slot in IMAGE_SLOTS
        if getattr(row, slot) is not None
    }
    return QueuedContribution(
        id=row.local_id,
        timestamp=row.timestamp,
        form_data=QueuedFormData.model_validate(row.form_data),
        images=QueuedImages(**images),
        status=row.status,
        retry_count=row.retry_count,
        error=row.error,
    )


class OfflineQueue:
    def __init__(self, database_url: str | None = None):
        self.database_url = normalize_database_url(database_url or settings.queue_database_url)
        self._engine = create_async_engine(self.database_url, **engine_options(self.database_url))
        self._session = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

    async def init(self) -> None:
        database = make_url(self.database_url).database
        if database and database != ":memory:":
            directory = os.path.dirname(os.path.abspath(database))
            os.makedirs(directory, exist_ok=True)
        async with self._engine.begin() as conn:
            await conn.run_sync(QueueBase.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    async def enqueue(
        self,
        form_data: QueuedFormData | dict,
        images: QueuedImages | dict,
    ) -> str:
        """Store a submission with status ``pending`` and return its local id."""
        form = QueuedFormData.model_validate(form_data)
        attachments = QueuedImages.model_validate(images)
        local_id = generate_local_id()

        async with self._session() as session:
            session.add(QueuedItem(
                local_id=local_id,
                timestamp=int(time.time() * 1000),
                form_data=form.model_dump(mode="json"),
                status="pending",
                retry_count=0,
                **_image_columns(attachments),
            ))
            await session.commit()

        logger.info("Queued contribution %s with %d image(s)", local_id, len(attachments.present()))
        return local_id

    async def get(self, local_id: str) -> QueuedContribution | None:
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(QueuedItem).where(QueuedItem.local_id == local_id)
                )
                row = result.scalars().first()
                return _to_queued(row) if row else None
        except SQLAlchemyError:
            logger.exception("Could not read queued contribution %s", local_id)
            return None

    async def list_all(self) -> list[QueuedContribution]:
        """Every stored item regardless of status, in insertion order."""
        try:
            async with self._session() as session:
                result = await session.execute(select(QueuedItem).order_by(QueuedItem.seq))
                return [_to_queued(row) for row in result.scalars().all()]
        except SQLAlchemyError:
            logger.exception("Could not read offline queue")
            return []

    async def set_status(self, local_id: str, status: str, error: str | None = None) -> bool:
        """Update an item's status and error in place; ``failed`` also bumps its retry count.

        Returns False when no item has this id.
        """
        if status not in QUEUE_STATUSES:
            raise ValueError(f"Invalid queue status: {status}")

        async with self._session() as session:
            result = await session.execute(
                select(QueuedItem).where(QueuedItem.local_id == local_id)
            )
            row = result.scalars().first()
            if row is None:
                return False
            row.status = status
            # A new status carries its own error, or none
            row.error = error
            if status == "failed":
                row.retry_count += 1
            await session.commit()
        return True

    async def remove(self, local_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(QueuedItem).where(QueuedItem.local_id == local_id)
            )
            await session.commit()
        return result.rowcount > 0

    async def purge(self, status: str | None = None) -> int:
        """Delete every item, or only those with ``status``. Returns the number removed."""
        stmt = delete(QueuedItem)
        if status is not None:
            if status not in QUEUE_STATUSES:
                raise ValueError(f"Invalid queue status: {status}")
            stmt = stmt.where(QueuedItem.status == status)
        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
        logger.info("Purged %d queued contribution(s)", result.rowcount)
        return result.rowcount

    async def stats(self) -> QueueStats:
        try:
            async with self._session() as session:
                counts = await session.execute(
                    select(QueuedItem.status, func.count(QueuedItem.seq)).group_by(QueuedItem.status)
                )
                by_status = dict(counts.all())
                oldest = await session.scalar(select(func.min(QueuedItem.timestamp)))
        except SQLAlchemyError:
            logger.exception("Could not read offline queue stats")
            return QueueStats()

        return QueueStats(
            total=sum(by_status.values()),
            pending=by_status.get("pending", 0),
            uploading=by_status.get("uploading", 0),
            failed=by_status.get("failed", 0),
            completed=by_status.get("completed", 0),
            oldest_timestamp=oldest,
        )

    async def estimated_size_bytes(self) -> int:
        """Total size of the queued image payloads."""
        total = sum(
            func.coalesce(func.sum(func.length(getattr(QueuedItem, slot))), 0)
            for slot in IMAGE_SLOTS
        )
        try:
            async with self._session() as session:
                return int(await session.scalar(select(total)) or 0)
        except SQLAlchemyError:
            logger.exception("Could not measure offline queue")
            return 0
