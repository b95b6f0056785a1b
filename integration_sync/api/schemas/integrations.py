from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Dict, Optional

from integration_sync.models.sync_log import SyncType


class SyncRequest(BaseModel):
    connection_id: int
    tenant_id: Optional[str] = None
    sync_type: SyncType = SyncType.INCREMENTAL


class EndpointError(BaseModel):
    endpoint: str
    message: str


class SyncCounts(BaseModel):
    processed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    errors: List[EndpointError] = Field(default_factory=list)


class SyncResponse(BaseModel):
    """Résultat d'une synchronisation manuelle"""
    success: bool
    connection_id: int
    provider_id: str
    sync_log_id: Optional[int] = None
    results: SyncCounts
    synced_at: datetime
    duration_ms: int
    error: Optional[str] = None


class ConnectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    provider_id: str
    name: Optional[str] = None
    sync_enabled: bool
    sync_frequency_minutes: int
    last_sync_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    status: str
    health_status: str
    consecutive_failures: int
    error_message: Optional[str] = None


class SyncLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    connection_id: int
    tenant_id: str
    sync_type: str
    status: str
    triggered_by: Optional[str] = None
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_deleted: int = 0
    errors: List[EndpointError] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class StaleConnection(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_id: str
    last_sync_at: Optional[datetime] = None


class HealthSummary(BaseModel):
    """Vue d'ensemble de la santé des connexions"""
    status_counts: Dict[str, int]
    health_counts: Dict[str, int]
    stale_threshold_hours: int
    stale_connections: List[StaleConnection]
    timestamp: datetime


class ProviderEndpointInfo(BaseModel):
    type: str
    path: str
    method: str


class ProviderInfo(BaseModel):
    provider_id: str
    pagination: Optional[str] = None
    endpoints: List[ProviderEndpointInfo]
