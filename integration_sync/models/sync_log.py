from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, JSON
from sqlalchemy.orm import relationship
import enum

from integration_sync.models.base import BaseModel


class SyncType(str, enum.Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncLogStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class IntegrationSyncLog(BaseModel):
    __tablename__ = "integration_sync_logs"

    connection_id = Column(Integer, ForeignKey("integration_connections.id"), nullable=False, index=True)
    tenant_id = Column(String(255), nullable=False)
    sync_type = Column(String(50), nullable=False)  # full, incremental
    status = Column(String(50), nullable=False)  # started, completed, failed
    triggered_by = Column(String(50))  # scheduler, manual

    # Résultats
    records_processed = Column(Integer, default=0)
    records_created = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    records_deleted = Column(Integer, default=0)

    # Erreurs par endpoint: [{"endpoint": ..., "message": ...}]
    errors = Column(JSON, default=list)

    # Timing
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    duration_ms = Column(Integer)

    connection = relationship("IntegrationConnection", back_populates="sync_logs")
