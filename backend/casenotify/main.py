import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from casenotify.core.config import settings
from casenotify.core.database import init_db
from casenotify.routers import notifications

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {
        "name": "Notifications",
        "description": (
            "Create, target and deliver notifications; track reads and clicks; "
            "run delivery sweeps and analytics."
        ),
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    logger.info("Database initialized")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Notification delivery and targeting engine for the social assistance "
        "case-management platform."
    ),
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    notifications.router,
    prefix="/v1/notifications",
    tags=["Notifications"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
    }
