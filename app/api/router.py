from fastapi import APIRouter

from app.api.audit import router as audit_router
from app.api.events import router as events_router
from app.api.jobs import router as jobs_router
from app.api.worker import router as worker_router

api_router = APIRouter()

# API routes at /api/*
api_router.include_router(jobs_router, prefix="/api", tags=["jobs"])
api_router.include_router(worker_router, prefix="/api", tags=["worker"])
api_router.include_router(events_router, prefix="/api", tags=["sse"])
api_router.include_router(audit_router, prefix="/api", tags=["audit"])
