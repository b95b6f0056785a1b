from functools import lru_cache
from sqlalchemy.orm import Session
from fastapi import Depends

from integration_sync.config import settings
from integration_sync.core.database import get_db, db_manager
from integration_sync.external.provider_client import CredentialResolver, ProviderClient
from integration_sync.repositories.connection_repository import ConnectionRepository
from integration_sync.repositories.sync_repository import SyncRepository
from integration_sync.services.backoff import ConnectionStateMachine
from integration_sync.services.scheduler_service import SchedulerService
from integration_sync.services.sync_service import SyncService
from integration_sync.workers.sync_scheduler_worker import SyncSchedulerWorker


# === CLIENTS EXTERNES ===
@lru_cache()
def get_credential_resolver() -> CredentialResolver:
    # Le déchiffrement des secrets est fourni par un collaborateur externe
    return CredentialResolver()


def get_provider_client() -> ProviderClient:
    """Un client (et une session HTTP) par invocation: les sessions ne sont pas partagées entre threads"""
    return ProviderClient(
        timeout=settings.FETCH_TIMEOUT_SECONDS,
        user_agent=settings.USER_AGENT,
        credential_resolver=get_credential_resolver()
    )


@lru_cache()
def get_state_machine() -> ConnectionStateMachine:
    return ConnectionStateMachine(
        cap_minutes=settings.BACKOFF_CAP_MINUTES,
        failure_threshold=settings.FAILURE_THRESHOLD,
        default_frequency_minutes=settings.DEFAULT_SYNC_FREQUENCY_MINUTES
    )


# === REPOSITORIES ===
def get_connection_repository(db: Session = Depends(get_db)) -> ConnectionRepository:
    """Factory pour le repository des connexions"""
    return ConnectionRepository(db)


def get_sync_repository(db: Session = Depends(get_db)) -> SyncRepository:
    """Factory pour le repository des logs de synchronisation"""
    return SyncRepository(db)


# === SERVICES ===
def build_scheduler_service(db: Session) -> SchedulerService:
    """Assemble le scheduler sur une session donnée (API et worker)"""
    return SchedulerService(
        connection_repo=ConnectionRepository(db),
        sync_service=SyncService(db, get_provider_client()),
        state_machine=get_state_machine(),
        instance_id=settings.instance_id,
        batch_size=settings.SYNC_BATCH_SIZE,
        call_timeout_seconds=settings.SYNC_CALL_TIMEOUT_SECONDS,
        lease_ttl_seconds=settings.LEASE_TTL_SECONDS
    )


def get_scheduler_service(db: Session = Depends(get_db)) -> SchedulerService:
    """Factory pour le scheduler de synchronisation"""
    return build_scheduler_service(db)


# === WORKERS ===
_scheduler_worker_instance = None


def get_sync_scheduler_worker() -> SyncSchedulerWorker:
    """Factory pour le worker du scheduler (singleton)"""
    global _scheduler_worker_instance
    if _scheduler_worker_instance is None:
        _scheduler_worker_instance = SyncSchedulerWorker(
            scheduler_factory=build_scheduler_service,
            session_factory=db_manager.get_session,
            interval_seconds=settings.SCHEDULER_INTERVAL_SECONDS
        )
    return _scheduler_worker_instance
