"""
Health endpoint: public liveness and database check.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lifetime.api.v1.deps import get_db
from lifetime.core.config import settings
from lifetime.schemas.attendance import HealthResponse

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check: reports whether the database answers."""
    database = "ok"
    try:
        await db.execute(select(1))
    except SQLAlchemyError as e:
        logger.error("Health check DB failure: %s", e)
        database = "unreachable"

    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        version=settings.VERSION,
        database=database,
    )
