"""
LifeTime — data store service entry point.

This is the **only** file that assembles the app.  Business logic lives
in the `api/`, `repository/`, `models/` and `core/` packages; the
client-side session logic lives in `client/`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from lifetime.api.v1.api import api_router
from lifetime.core.config import settings
from lifetime.core.exceptions import register_exception_handlers
from lifetime.core.security import get_password_hash
from lifetime.db.base import Base
from lifetime.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from lifetime.models.attendance import AttendanceRecord, IdleRecord  # noqa: F401
from lifetime.models.user import User

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    # Seed default admin user on first run
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.userid == settings.FIRST_ADMIN_USERID)
        )
        if result.scalar_one_or_none() is None:
            session.add(
                User(
                    userid=settings.FIRST_ADMIN_USERID,
                    hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
                    name="Administrator",
                    role="admin",
                )
            )
            await session.commit()
            logger.info(
                "Default admin created: %s (password: <redacted>)",
                settings.FIRST_ADMIN_USERID,
            )

    logger.info("%s v%s started", settings.PROJECT_NAME, settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Employee time tracking with idle detection",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return application


app = create_app()
