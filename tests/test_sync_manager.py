import asyncio
import json
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from plasticwatch.main import app
from plasticwatch.offline.queue import OfflineQueue
from plasticwatch.offline.remote import RemoteStore
from plasticwatch.offline.sync_manager import (
    SyncManager,
    build_contribution_record,
    image_object_path,
    remote_contribution_id,
)
from plasticwatch.schemas.offline import QueuedContribution, SyncStats
from plasticwatch.utils.exceptions import AuthorizationError, TransientIOError


def _form(beach_name, **overrides):
    form = {
        "brand": "AquaPura",
        "plastic_type": "PETE_1",
        "beach_name": beach_name,
        "location": {"lat": 43.68, "lng": 10.34},
    }
    form.update(overrides)
    return form


def _images(name="front.jpg"):
    return {"product_image": {"blob": b"\xff\xd8product", "name": name}}


class FakeRemote:
    def __init__(self, online=True, failing_names=()):
        self.online = online
        self.failing_names = set(failing_names)
        self.uploads: list[str] = []
        self.inserted: list[dict] = []
        self.gate: asyncio.Event | None = None

    async def is_online(self) -> bool:
        return self.online

    async def upload_file(self, blob, name, path=None):
        if self.gate is not None:
            await self.gate.wait()
        if name in self.failing_names:
            raise TransientIOError(f"upload of {name} timed out")
        self.uploads.append(path)
        return f"http://remote/{path}"

    async def insert_contribution(self, record):
        self.inserted.append(record)
        return record


@pytest_asyncio.fixture
async def queue(tmp_path):
    q = OfflineQueue(f"sqlite+aiosqlite:///{tmp_path}/offline.sqlite3")
    await q.init()
    yield q
    await q.close()


def test_remote_id_is_stable_per_local_id():
    assert remote_contribution_id("offline_1_abc") == remote_contribution_id("offline_1_abc")
    assert remote_contribution_id("offline_1_abc") != remote_contribution_id("offline_2_abc")
    uuid.UUID(remote_contribution_id("offline_1_abc"))


def test_image_object_path():
    assert image_object_path("offline_1_abc", "product_image", "IMG.JPEG") == "offline_1_abc/product_image.jpeg"
    assert image_object_path("offline_1_abc", "backside_image", "blob") == "offline_1_abc/backside_image.jpg"


def test_build_contribution_record():
    item = QueuedContribution(
        id="offline_1767225600000_abcdef123",
        timestamp=1767225600000,
        form_data=_form("Tirrenia", beach_location={"lat": 43.67, "lng": 10.33, "name": "Tirrenia"}),
        images=_images(),
    )

    record = build_contribution_record(item, {"product_image": "http://remote/p.jpg"})

    assert record["id"] == remote_contribution_id(item.id)
    assert record["created_at"] == "2026-01-01T00:00:00+00:00"
    assert record["latitude"] == 43.68
    assert record["beach_latitude"] == 43.67
    assert record["brand_suggestion"] == "AquaPura"
    assert record["product_image_url"] == "http://remote/p.jpg"
    assert record["backside_image_url"] is None


@pytest.mark.asyncio
async def test_sync_isolates_failures(queue):
    first = await queue.enqueue(_form("A"), _images())
    second = await queue.enqueue(_form("B"), _images("broken.jpg"))
    third = await queue.enqueue(_form("C"), _images())
    remote = FakeRemote(failing_names={"broken.jpg"})
    manager = SyncManager(queue, remote)

    stats = await manager.sync_queue()

    assert (stats.total, stats.completed, stats.failed) == (3, 2, 1)
    assert [r["id"] for r in remote.inserted] == [remote_contribution_id(first), remote_contribution_id(third)]

    remaining = await queue.list_all()
    assert [item.id for item in remaining] == [second]
    assert remaining[0].status == "failed"
    assert remaining[0].retry_count == 1
    assert "timed out" in remaining[0].error
    assert manager.is_sync_in_progress() is False


@pytest.mark.asyncio
async def test_failed_item_is_retried_next_pass(queue):
    local_id = await queue.enqueue(_form("A"), _images("broken.jpg"))
    remote = FakeRemote(failing_names={"broken.jpg"})
    manager = SyncManager(queue, remote)

    await manager.sync_queue()
    remote.failing_names.clear()
    stats = await manager.sync_queue()

    assert (stats.total, stats.completed, stats.failed) == (1, 1, 0)
    assert remote.inserted[0]["id"] == remote_contribution_id(local_id)
    assert await queue.list_all() == []


@pytest.mark.asyncio
async def test_overlapping_sync_returns_empty_result(queue):
    await queue.enqueue(_form("A"), _images())
    remote = FakeRemote()
    remote.gate = asyncio.Event()
    manager = SyncManager(queue, remote)

    running = asyncio.create_task(manager.sync_queue())
    while not manager.is_sync_in_progress():
        await asyncio.sleep(0)

    overlapping = await manager.sync_queue()
    remote.gate.set()
    finished = await running

    assert overlapping == SyncStats()
    assert finished.completed == 1
    assert len(remote.inserted) == 1


@pytest.mark.asyncio
async def test_offline_sync_touches_nothing(queue):
    await queue.enqueue(_form("A"), _images())
    remote = FakeRemote(online=False)
    manager = SyncManager(queue, remote)

    stats = await manager.manual_sync()

    assert stats == SyncStats()
    assert remote.uploads == []
    assert (await queue.list_all())[0].status == "pending"
    assert manager.is_sync_in_progress() is False


@pytest.mark.asyncio
async def test_items_stuck_uploading_are_retried(queue):
    local_id = await queue.enqueue(_form("A"), _images())
    await queue.set_status(local_id, "uploading")
    remote = FakeRemote()
    manager = SyncManager(queue, remote)

    stats = await manager.sync_queue()

    assert stats.completed == 1
    assert len(remote.inserted) == 1


@pytest.mark.asyncio
async def test_completed_leftovers_are_not_resent(queue):
    local_id = await queue.enqueue(_form("A"), _images())
    await queue.set_status(local_id, "completed")
    remote = FakeRemote()

    stats = await SyncManager(queue, remote).sync_queue()

    assert stats.total == 0
    assert remote.inserted == []


@pytest.mark.asyncio
async def test_progress_listeners(queue):
    await queue.enqueue(_form("Tirrenia"), _images())
    await queue.enqueue(_form(None), _images())
    manager = SyncManager(queue, FakeRemote())
    seen: list[SyncStats] = []
    unsubscribed: list[SyncStats] = []

    def broken(stats):
        raise RuntimeError("listener bug")

    manager.on_sync_progress(seen.append)
    manager.on_sync_progress(broken)
    unsubscribe = manager.on_sync_progress(unsubscribed.append)
    unsubscribe()

    await manager.sync_queue()

    assert [s.current for s in seen] == ["Tirrenia", "Tirrenia", "Unknown location", "Unknown location"]
    assert [s.completed for s in seen] == [0, 1, 1, 2]
    assert unsubscribed == []


@pytest.mark.asyncio
async def test_auto_sync_runs_when_online(queue):
    await queue.enqueue(_form("A"), _images())
    remote = FakeRemote(online=False)
    manager = SyncManager(queue, remote, poll_interval=0.01)

    task = manager.init_auto_sync()
    assert manager.init_auto_sync() is task
    await asyncio.sleep(0.05)
    assert remote.inserted == []

    remote.online = True
    for _ in range(100):
        if remote.inserted:
            break
        await asyncio.sleep(0.01)
    await manager.stop_auto_sync()

    assert len(remote.inserted) == 1
    assert task.done()


@pytest.mark.asyncio
async def test_sync_against_api(queue, claims_headers):
    user_id = f"user-{uuid.uuid4()}"
    local_id = await queue.enqueue(_form("Marina di Vecchiano"), _images())
    headers = claims_headers(user_id)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        remote = RemoteStore(
            user_claims=json.loads(headers["X-User-Claims"]), client=client, bucket="contribution-images",
        )
        stats = await SyncManager(queue, remote).sync_queue()

        stored = await client.get(f"/api/v1/contributions/{remote_contribution_id(local_id)}", headers=headers)
        image = await client.get(stored.json()["data"]["product_image_url"])

        # Re-sending after a lost response returns the stored row
        item = QueuedContribution(
            id=local_id, timestamp=0, form_data=_form("Elsewhere"), images=_images(),
        )
        again = await remote.insert_contribution(build_contribution_record(item, {"product_image": "x"}))

    assert (stats.completed, stats.failed) == (1, 0)
    assert stored.status_code == 200
    data = stored.json()["data"]
    assert data["user_id"] == user_id
    assert data["beach_name"] == "Marina di Vecchiano"
    assert data["product_image_url"].endswith(f"/contribution-images/{local_id}/product_image.jpg")
    assert image.content == b"\xff\xd8product"
    assert again["beach_name"] == "Marina di Vecchiano"


@pytest.mark.asyncio
async def test_remote_rejects_unauthenticated_upload():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        remote = RemoteStore(user_claims="", client=client)
        assert await remote.is_online() is True

        with pytest.raises(AuthorizationError):
            await remote.upload_file(b"data", "front.jpg")


@pytest.mark.asyncio
async def test_pass_survives_unrecordable_failure(queue, monkeypatch):
    broken = await queue.enqueue(_form("A"), _images("broken.jpg"))
    healthy = await queue.enqueue(_form("B"), _images())
    remote = FakeRemote(failing_names={"broken.jpg"})
    manager = SyncManager(queue, remote)
    set_status = queue.set_status

    async def flaky_set_status(local_id, status, error=None):
        if status == "failed":
            raise OperationalError("UPDATE queued_contributions", {}, Exception("disk I/O error"))
        return await set_status(local_id, status, error)

    monkeypatch.setattr(queue, "set_status", flaky_set_status)

    stats = await manager.sync_queue()

    assert (stats.total, stats.completed, stats.failed) == (2, 1, 1)
    assert [r["id"] for r in remote.inserted] == [remote_contribution_id(healthy)]
    assert [item.id for item in await queue.list_all()] == [broken]
    assert manager.is_sync_in_progress() is False
