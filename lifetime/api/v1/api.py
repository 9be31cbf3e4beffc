"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from lifetime.api.v1.endpoints import attendance, auth, health

api_router = APIRouter()

# Auth (sign-in, current user, user management)
api_router.include_router(auth.router)

# Attendance, idle time, summaries
api_router.include_router(attendance.router)

# Liveness
api_router.include_router(health.router)
