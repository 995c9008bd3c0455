import json
import os
import tempfile
import uuid

# Point the app at a throwaway database and data dir before it is imported
_TEST_DIR = tempfile.mkdtemp(prefix="plasticwatch-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.sqlite3"
os.environ["DATA_DIR"] = _TEST_DIR
os.environ["PUBLIC_BASE_URL"] = "http://test"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


@pytest.fixture(autouse=True, scope="session")
def setup_test_db():
    import asyncio

    # Disable API key auth for tests
    from plasticwatch.config import settings
    settings.api_key = ""

    from plasticwatch.database import create_tables

    asyncio.run(create_tables())


@pytest.fixture
def claims_headers():
    def _headers(user_id: str, role: str | None = None, legacy_role: str | None = None) -> dict:
        claims: dict = {"sub": user_id}
        if role:
            claims["app_metadata"] = {"role": role}
        if legacy_role:
            claims["user_metadata"] = {"role": legacy_role}
        return {"X-User-Claims": json.dumps(claims)}

    return _headers


@pytest_asyncio.fixture
async def db_session():
    from plasticwatch.database import Base, enable_sqlite_foreign_keys, engine_options
    from plasticwatch.models import contribution, classification, review_history  # noqa: F401

    url = "sqlite+aiosqlite:///:memory:"
    engine = create_async_engine(url, **engine_options(url))
    enable_sqlite_foreign_keys(engine.sync_engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def make_contribution(db_session):
    from plasticwatch.models.contribution import Contribution

    async def _make(user_id: str = "user-1", status: str = "pending", **fields) -> Contribution:
        values = {
            "latitude": 43.72,
            "longitude": 10.40,
            "beach_name": "Marina di Pisa",
            "brand_suggestion": "AquaPura",
            "plastic_type_suggestion": "PETE_1",
            "product_image_url": "http://test/api/v1/storage/images/front.jpg",
        }
        values.update(fields)
        contribution = Contribution(id=str(uuid.uuid4()), user_id=user_id, status=status, **values)
        db_session.add(contribution)
        await db_session.commit()
        return contribution

    return _make
