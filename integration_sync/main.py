from fastapi import FastAPI
import uvicorn
import asyncio
import logging
from contextlib import asynccontextmanager

from integration_sync.api.router import router
from integration_sync.config import settings
from integration_sync.core.database import db_manager
from integration_sync.core.logging import setup_logging
from integration_sync.dependencies import get_sync_scheduler_worker

setup_logging(level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Démarrage de l'application...")
    db_manager.create_tables()

    app.state.worker = None
    app.state.worker_task = None

    if settings.SCHEDULER_ENABLED:
        try:
            worker = get_sync_scheduler_worker()
            worker_task = asyncio.create_task(worker.start())
            worker._task = worker_task
            app.state.worker = worker
            app.state.worker_task = worker_task
            logger.info("✅ Worker du scheduler démarré en arrière-plan")
        except Exception:
            logger.exception("❌ Erreur au démarrage du worker")

    yield

    logger.info("🔄 Arrêt de l'application...")

    if app.state.worker:
        app.state.worker.stop()
        if app.state.worker_task:
            app.state.worker_task.cancel()
            try:
                await asyncio.wait_for(app.state.worker_task, timeout=10.0)
                logger.info("✅ Worker arrêté proprement")
            except (asyncio.CancelledError, asyncio.TimeoutError):
                logger.warning("⚠️ Worker forcé à s'arrêter (timeout ou annulation)")

    logger.info("✅ Application arrêtée proprement")

app = FastAPI(
    title=settings.APP_NAME,
    description="Synchronisation des intégrations de conformité (identité, EDR, scanners, MDM, SIEM, RH)",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run("integration_sync.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
