import asyncio
import logging
import threading
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from integration_sync.core.clock import utcnow
from integration_sync.services.scheduler_service import RunReport, SchedulerService

logger = logging.getLogger(__name__)


class SyncSchedulerWorker:
    """Déclencheur périodique en processus du scheduler de synchronisation"""

    def __init__(self, scheduler_factory: Callable[[Session], SchedulerService],
                 session_factory: Callable[[], Session], interval_seconds: int = 300):
        self.scheduler_factory = scheduler_factory
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.running = False
        self._task = None  # tâche asyncio, assignée au démarrage
        self._stop_event = threading.Event()
        self.last_run_report: Optional[RunReport] = None
        self.last_run_at = None
        self.last_error: Optional[str] = None

    async def start(self):
        """Démarre la boucle du worker"""
        if self.running:
            return

        self.running = True
        self._stop_event.clear()
        logger.info(f"🔄 Sync scheduler worker started (interval: {self.interval_seconds}s)")

        while self.running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                logger.info("🔄 Worker cancelled")
                break
            except Exception as e:
                self.last_error = str(e)
                logger.exception("❌ Error in scheduler run")
                if self.running:  # Ne retry que si pas en cours d'arrêt
                    await asyncio.sleep(self.interval_seconds)

        logger.info("⏹️ Sync scheduler worker stopped")

    def stop(self):
        """Arrête le worker; le lot en cours s'interrompt après la connexion courante"""
        self.running = False
        self._stop_event.set()

    def is_healthy(self) -> bool:
        """Vérifier si le worker est en bonne santé"""
        return self.running and self._task is not None and not self._task.done()

    async def run_once(self) -> RunReport:
        """Exécute une invocation du scheduler hors de la boucle d'événements"""
        report = await asyncio.to_thread(self._run_scheduler)
        self.last_run_report = report
        self.last_run_at = utcnow()
        self.last_error = None
        return report

    def _run_scheduler(self) -> RunReport:
        db = self.session_factory()
        try:
            scheduler = self.scheduler_factory(db)
            return scheduler.run_scheduled_syncs(should_stop=self._stop_event.is_set, scheduled=True)
        finally:
            db.close()

    def get_status(self) -> Dict[str, Any]:
        report = self.last_run_report
        return {
            "running": self.running,
            "healthy": self.is_healthy(),
            "interval_seconds": self.interval_seconds,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "last_run": {
                "processed_count": report.processed_count,
                "success_count": report.success_count,
                "failed_count": report.failed_count,
                "skipped_count": report.skipped_count,
            } if report else None,
        }
