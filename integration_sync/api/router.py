from fastapi import APIRouter
from integration_sync.api.v1 import integrations
from integration_sync.dependencies import get_sync_scheduler_worker

router = APIRouter()

router.include_router(integrations.router, prefix="/api/v1")


@router.get("/")
async def root():
    return {
        "message": "Integration Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "scheduler": "/api/v1/integrations/scheduler/run"
    }


@router.get("/health")
async def health():
    return {"status": "healthy"}


@router.get("/worker/status")
async def worker_status():
    worker = get_sync_scheduler_worker()
    status = worker.get_status()
    status["status"] = "healthy" if status["healthy"] else "unhealthy"
    return status
