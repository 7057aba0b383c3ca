"""API v1 router configuration."""

from fastapi import APIRouter

from frontdesk.api.v1.endpoints import doctors, health, queue

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(queue.router, prefix="/queue", tags=["Queue"])
api_router.include_router(doctors.router, prefix="/doctors", tags=["Doctors"])
