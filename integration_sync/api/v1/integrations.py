from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from integration_sync.api.schemas.integrations import (
    ConnectionResponse,
    HealthSummary,
    ProviderEndpointInfo,
    ProviderInfo,
    StaleConnection,
    SyncCounts,
    SyncLogResponse,
    SyncRequest,
    SyncResponse,
)
from integration_sync.config import settings
from integration_sync.core.clock import utcnow
from integration_sync.core.exceptions import ConnectionNotFoundError, IntegrationSyncError
from integration_sync.dependencies import get_connection_repository, get_scheduler_service, get_sync_repository
from integration_sync.repositories.connection_repository import ConnectionRepository
from integration_sync.repositories.sync_repository import SyncRepository
from integration_sync.services.provider_registry import PROVIDER_SYNC_CONFIGS
from integration_sync.services.scheduler_service import RunReport, SchedulerService

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.post("/sync", response_model=SyncResponse)
def sync_connection(
        request: SyncRequest,
        scheduler: SchedulerService = Depends(get_scheduler_service)
):
    """Synchroniser immédiatement une connexion"""
    try:
        run, sync_result = scheduler.sync_connection_now(
            request.connection_id, request.tenant_id, request.sync_type
        )
    except IntegrationSyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if sync_result is not None:
        counts = SyncCounts(errors=sync_result.errors, **sync_result.counts())
        synced_at = sync_result.synced_at
    else:
        counts = SyncCounts(errors=[{"endpoint": "sync", "message": run.error or "Sync failed"}])
        synced_at = utcnow()

    return SyncResponse(
        success=run.success,
        connection_id=run.connection_id,
        provider_id=run.provider_id,
        sync_log_id=run.sync_log_id,
        results=counts,
        synced_at=synced_at,
        duration_ms=run.duration_ms,
        error=run.error,
    )


@router.post("/scheduler/run", response_model=RunReport)
def run_scheduler(
        x_scheduled: Optional[str] = Header(default=None),
        scheduler: SchedulerService = Depends(get_scheduler_service)
):
    """Déclencher une invocation du scheduler (planifiée ou manuelle)"""
    scheduled = (x_scheduled or "").lower() == "true"
    return scheduler.run_scheduled_syncs(scheduled=scheduled)


@router.get("/connections/{connection_id}", response_model=ConnectionResponse)
def get_connection(
        connection_id: int,
        tenant_id: Optional[str] = None,
        connection_repo: ConnectionRepository = Depends(get_connection_repository)
):
    """État de santé et de planification d'une connexion"""
    connection = connection_repo.get_for_tenant(connection_id, tenant_id)
    if connection is None:
        raise HTTPException(status_code=404, detail=ConnectionNotFoundError(connection_id).message)
    return ConnectionResponse.model_validate(connection)


@router.get("/connections/{connection_id}/sync-logs", response_model=List[SyncLogResponse])
def get_sync_logs(
        connection_id: int,
        tenant_id: Optional[str] = None,
        limit: int = Query(default=20, ge=1, le=200),
        connection_repo: ConnectionRepository = Depends(get_connection_repository),
        sync_repo: SyncRepository = Depends(get_sync_repository)
):
    """Historique des synchronisations d'une connexion"""
    if connection_repo.get_for_tenant(connection_id, tenant_id) is None:
        raise HTTPException(status_code=404, detail=ConnectionNotFoundError(connection_id).message)
    return [SyncLogResponse.model_validate(log) for log in sync_repo.get_recent_logs(connection_id, limit)]


@router.get("/health", response_model=HealthSummary)
def get_health_summary(
        connection_repo: ConnectionRepository = Depends(get_connection_repository)
):
    """Compteurs par statut et connexions sans synchronisation récente"""
    now = utcnow()
    counts = connection_repo.count_by_status()
    stale = connection_repo.get_stale_connections(now - timedelta(hours=settings.STALE_THRESHOLD_HOURS))
    return HealthSummary(
        status_counts=counts["status"],
        health_counts=counts["health_status"],
        stale_threshold_hours=settings.STALE_THRESHOLD_HOURS,
        stale_connections=[StaleConnection.model_validate(c) for c in stale],
        timestamp=now,
    )


@router.get("/providers", response_model=List[ProviderInfo])
def list_providers():
    """Providers supportés et leurs endpoints"""
    return [
        ProviderInfo(
            provider_id=provider_id,
            pagination=config.pagination.type if config.pagination else None,
            endpoints=[ProviderEndpointInfo(type=e.type, path=e.path, method=e.method) for e in config.endpoints],
        )
        for provider_id, config in sorted(PROVIDER_SYNC_CONFIGS.items())
    ]
