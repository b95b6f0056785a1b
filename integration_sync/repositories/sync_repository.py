from typing import List, Dict, Any, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from integration_sync.repositories.base_repository import BaseRepository
from integration_sync.models.sync_log import IntegrationSyncLog, SyncLogStatus


class SyncRepository(BaseRepository[IntegrationSyncLog]):
    def __init__(self, db: Session):
        super().__init__(IntegrationSyncLog, db)

    def open_log(self, connection_id: int, tenant_id: str, sync_type: str,
                 started_at: datetime, triggered_by: Optional[str] = None) -> IntegrationSyncLog:
        """Crée l'entrée de log au démarrage d'une synchronisation (status=started)"""
        return self.create({
            "connection_id": connection_id,
            "tenant_id": tenant_id,
            "sync_type": sync_type,
            "status": SyncLogStatus.STARTED.value,
            "triggered_by": triggered_by,
            "started_at": started_at,
            "errors": [],
        })

    def close_log(self, log_id: int, status: SyncLogStatus, counts: Dict[str, int],
                  errors: List[Dict[str, Any]], completed_at: datetime,
                  duration_ms: int) -> Optional[IntegrationSyncLog]:
        """Clôture un log encore ouvert; un log déjà clôturé n'est jamais réécrit"""
        log = self.get_by_id(log_id)
        if log is None or log.status != SyncLogStatus.STARTED.value:
            return log
        return self.update(log_id, {
            "status": status.value,
            "records_processed": counts.get("processed", 0),
            "records_created": counts.get("created", 0),
            "records_updated": counts.get("updated", 0),
            "records_deleted": counts.get("deleted", 0),
            "errors": list(errors),
            "completed_at": completed_at,
            "duration_ms": duration_ms,
        })

    def get_recent_logs(self, connection_id: int, limit: int = 50) -> List[IntegrationSyncLog]:
        """Récupère les logs de sync les plus récents d'une connexion"""
        return (self.db.query(IntegrationSyncLog)
                .filter(IntegrationSyncLog.connection_id == connection_id)
                .order_by(IntegrationSyncLog.started_at.desc(), IntegrationSyncLog.id.desc())
                .limit(limit)
                .all())
