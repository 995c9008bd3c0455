import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from plasticwatch.config import settings
from plasticwatch.database import create_tables
from plasticwatch.dependencies import verify_api_key
from plasticwatch.routers.contributions import router as contributions_router
from plasticwatch.routers.review import router as review_router
from plasticwatch.routers.stats import router as stats_router
from plasticwatch.routers.storage import router as storage_router, public_router as storage_public_router
from plasticwatch.utils.exceptions import register_exception_handlers

VERSION = "0.1.0"

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    yield


app = FastAPI(
    title="PlasticWatch API",
    description="Contribution review, classification audit trail and dashboard statistics",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

_api_key_dep = [Depends(verify_api_key)]

app.include_router(contributions_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(review_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(stats_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(storage_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(storage_public_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {"status": "success", "data": {"service": "plasticwatch-api", "version": VERSION}, "message": None}
