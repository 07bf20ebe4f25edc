"""API v1 router configuration."""

from fastapi import APIRouter

from slot_alerts.api.v1.endpoints import health, jobs

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
