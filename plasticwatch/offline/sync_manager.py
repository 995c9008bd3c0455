"""Drains the offline queue into the remote store.

At most one pass runs at a time: the in-progress flag is set before the first
await of a pass, so a second call made while a pass is running returns an
empty result instead of racing it. Failures are isolated per item; a failed
item stays queued with its error and a bumped retry count and is picked up
again by the next pass.

Retries are idempotent. The remote contribution id is derived from the local
id and image paths are derived from the local id and slot, so re-sending an
item whose earlier insert already landed returns the stored row.
"""
import asyncio
import logging
import os
import re
import uuid
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from plasticwatch.config import settings
from plasticwatch.offline.queue import OfflineQueue
from plasticwatch.offline.remote import RemoteStore
from plasticwatch.schemas.offline import QueuedContribution, SyncStats

logger = logging.getLogger(__name__)

SyncListener = Callable[[SyncStats], None]

SYNCABLE_STATUSES = ("pending", "failed")


def remote_contribution_id(local_id: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"plasticwatch:offline:{local_id}"))


def image_object_path(local_id: str, slot: str, filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    if not re.match(r"^\.[a-z0-9]{1,8}$", ext):
        ext = ".jpg"
    return f"{local_id}/{slot}{ext}"


def build_contribution_record(item: QueuedContribution, image_urls: dict[str, str]) -> dict:
    form = item.form_data
    beach = form.beach_location
    return {
        "id": remote_contribution_id(item.id),
        "created_at": datetime.fromtimestamp(item.timestamp / 1000, tz=timezone.utc).isoformat(),
        "latitude": form.location.lat,
        "longitude": form.location.lng,
        "beach_name": form.beach_name,
        "beach_latitude": beach.lat if beach else None,
        "beach_longitude": beach.lng if beach else None,
        "brand_suggestion": form.brand,
        "plastic_type_suggestion": form.plastic_type,
        "notes": form.notes,
        "product_image_url": image_urls["product_image"],
        "backside_image_url": image_urls.get("backside_image"),
        "recycling_image_url": image_urls.get("recycling_image"),
        "manufacturer_image_url": image_urls.get("manufacturer_image"),
    }


class SyncManager:
    def __init__(
        self,
        queue: OfflineQueue,
        remote: RemoteStore,
        poll_interval: float | None = None,
    ):
        self.queue = queue
        self.remote = remote
        self.poll_interval = poll_interval or settings.sync_poll_interval_seconds
        self._syncing = False
        self._listeners: list[SyncListener] = []
        self._watcher: asyncio.Task | None = None
        self._online: bool | None = None

    def is_sync_in_progress(self) -> bool:
        return self._syncing

    def on_sync_progress(self, callback: SyncListener) -> Callable[[], None]:
        """Subscribe to progress updates; returns a function that unsubscribes."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, stats: SyncStats) -> None:
        snapshot = stats.model_copy()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Sync progress listener failed")

    async def sync_queue(self) -> SyncStats:
        if self._syncing:
            logger.info("Sync already in progress")
            return SyncStats()

        self._syncing = True
        try:
            if not await self.remote.is_online():
                logger.info("Cannot sync: offline")
                return SyncStats()
            return await self._run_pass()
        finally:
            self._syncing = False

    async def manual_sync(self) -> SyncStats:
        return await self.sync_queue()

    async def _run_pass(self) -> SyncStats:
        snapshot = await self.queue.list_all()
        for item in snapshot:
            # No other pass is running, so this one was cut off mid-upload
            if item.status == "uploading":
                await self.queue.set_status(item.id, "failed", "Sync interrupted")
                item.status = "failed"

        items = [item for item in snapshot if item.status in SYNCABLE_STATUSES]
        stats = SyncStats(total=len(items))
        logger.info("Starting sync of %d contributions", len(items))

        for item in items:
            stats.current = item.form_data.beach_name or "Unknown location"
            self._notify(stats)

            try:
                await self._sync_one(item)
            except Exception as exc:
                logger.warning("Failed to sync contribution %s: %s", item.id, exc)
                stats.failed += 1
                try:
                    await self.queue.set_status(item.id, "failed", str(exc))
                except SQLAlchemyError:
                    # Left as uploading; the next pass resets it to failed
                    logger.exception("Could not record failure of contribution %s", item.id)
            else:
                stats.completed += 1
                try:
                    await self.queue.remove(item.id)
                except SQLAlchemyError:
                    # Left as completed; later passes skip it and purge() clears it
                    logger.exception("Synced contribution %s could not be removed from the queue", item.id)
                logger.info("Synced contribution %s", item.id)

            self._notify(stats)

        logger.info("Sync complete: %d succeeded, %d failed", stats.completed, stats.failed)
        return stats

    async def _sync_one(self, item: QueuedContribution) -> None:
        await self.queue.set_status(item.id, "uploading")

        attached = item.images.present()
        urls = await asyncio.gather(*(
            self.remote.upload_file(
                image.blob,
                image.name,
                path=image_object_path(item.id, slot, image.name),
            )
            for slot, image in attached.items()
        ))
        record = build_contribution_record(item, dict(zip(attached, urls)))
        await self.remote.insert_contribution(record)

        # Marked before removal so a crash in between cannot re-send the item
        await self.queue.set_status(item.id, "completed")

    async def handle_online(self) -> SyncStats:
        logger.info("Connection restored. Starting sync...")
        return await self.sync_queue()

    def handle_offline(self) -> None:
        logger.info("Connection lost. Contributions will be queued.")

    def init_auto_sync(self) -> asyncio.Task:
        """Start watching connectivity; a pass starts on every offline-to-online change."""
        if self._watcher is None or self._watcher.done():
            self._online = None
            self._watcher = asyncio.create_task(self._watch_connectivity())
        return self._watcher

    async def stop_auto_sync(self) -> None:
        watcher, self._watcher = self._watcher, None
        if watcher is None:
            return
        watcher.cancel()
        try:
            await watcher
        except asyncio.CancelledError:
            pass

    async def _watch_connectivity(self) -> None:
        while True:
            online = await self.remote.is_online()
            previous, self._online = self._online, online
            try:
                if online and previous is not True:
                    await self.handle_online()
                elif not online and previous is not False:
                    self.handle_offline()
            except Exception:
                logger.exception("Automatic sync pass failed")
            await asyncio.sleep(self.poll_interval)
