"""
Scheduler des connexions dues.

Une invocation sélectionne un lot borné de connexions dues et les synchronise
strictement en séquence. Quelle que soit l'issue, la machine d'état met à jour
la connexion. Aucune erreur d'une connexion n'interrompt le lot.
"""

import logging
import time
import uuid
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from integration_sync.core.clock import utcnow
from integration_sync.core.exceptions import (
    ConnectionNotFoundError,
    LeaseUnavailableError,
    SyncDisabledError,
    SyncTimeoutError,
    UnconfiguredProviderError,
)
from integration_sync.models.connection import IntegrationConnection
from integration_sync.models.sync_log import SyncType
from integration_sync.repositories.connection_repository import ConnectionRepository
from integration_sync.services.backoff import ConnectionStateMachine
from integration_sync.services.provider_registry import get_provider_config
from integration_sync.services.sync_service import SyncResult, SyncService

logger = logging.getLogger(__name__)

TRIGGERED_BY_SCHEDULER = "scheduler"
TRIGGERED_BY_MANUAL = "manual"


class ConnectionRunResult(BaseModel):
    connection_id: int
    provider_id: str
    success: bool
    duration_ms: int = 0
    error: Optional[str] = None
    skipped: bool = False
    sync_log_id: Optional[int] = None


class RunReport(BaseModel):
    message: str
    processed_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    cancelled: bool = False
    results: List[ConnectionRunResult] = Field(default_factory=list)
    timestamp: datetime


class SchedulerService:
    def __init__(self, connection_repo: ConnectionRepository, sync_service: SyncService,
                 state_machine: ConnectionStateMachine, instance_id: str,
                 batch_size: int = 10, call_timeout_seconds: float = 60.0,
                 lease_ttl_seconds: int = 300, clock: Callable[[], datetime] = utcnow):
        self.connection_repo = connection_repo
        self.sync_service = sync_service
        self.state_machine = state_machine
        self.instance_id = instance_id
        self.batch_size = batch_size
        self.call_timeout_seconds = call_timeout_seconds
        self.lease_ttl_seconds = lease_ttl_seconds
        self.clock = clock

    def get_due_connections(self, now: Optional[datetime] = None) -> List[IntegrationConnection]:
        """Connexions dues, triées par next_sync_at (nulls en premier), limitées au lot"""
        return self.connection_repo.get_due_connections(now or self.clock(), self.batch_size)

    def run_connection(self, connection: IntegrationConnection,
                       sync_type: SyncType = SyncType.INCREMENTAL,
                       triggered_by: str = TRIGGERED_BY_SCHEDULER) -> Tuple[ConnectionRunResult, Optional[SyncResult]]:
        """
        Synchronise une connexion sous lease puis applique la transition de santé.

        Lève LeaseUnavailableError si une autre invocation détient le lease.
        Toute autre erreur est convertie en résultat d'échec.
        """
        connection_id = connection.id
        provider_id = connection.provider_id

        # Jeton propre à cette exécution: deux runs du même processus ne partagent pas le lease
        lease_owner = f"{self.instance_id}-{uuid.uuid4().hex}"
        if not self.connection_repo.acquire_lease(connection_id, lease_owner, self.clock(),
                                                  self.lease_ttl_seconds):
            raise LeaseUnavailableError(connection_id)

        start = time.monotonic()
        sync_result: Optional[SyncResult] = None
        error: Optional[str] = None
        sync_log_id: Optional[int] = None

        try:
            sync_result = self.sync_service.sync_connection(
                connection,
                sync_type=sync_type,
                triggered_by=triggered_by,
                deadline=start + self.call_timeout_seconds,
                timeout_seconds=self.call_timeout_seconds,
            )
            sync_log_id = sync_result.sync_log_id
            error = None if sync_result.success else sync_result.first_error
        except SyncTimeoutError as e:
            logger.warning(f"Connexion {connection_id} ({provider_id}): {e.message}")
            error = e.message
            sync_log_id = e.sync_log_id
        except Exception as e:
            logger.exception(f"Erreur inattendue pendant la synchronisation de la connexion {connection_id}")
            error = f"Unexpected error: {e}"
            sync_log_id = getattr(e, "sync_log_id", None)

        success = sync_result is not None and sync_result.success
        self._record_outcome(connection_id, lease_owner, success, error)

        result = ConnectionRunResult(
            connection_id=connection_id,
            provider_id=provider_id,
            success=success,
            duration_ms=int((time.monotonic() - start) * 1000),
            error=error,
            sync_log_id=sync_log_id,
        )
        return result, sync_result

    def _record_outcome(self, connection_id: int, lease_owner: str, success: bool, error: Optional[str]) -> None:
        """Applique la machine d'état; une erreur de store est loguée sans interrompre le lot"""
        try:
            connection = self.connection_repo.get_by_id(connection_id)
            if connection is None:
                logger.warning(f"Connexion {connection_id} supprimée pendant la synchronisation")
                return
            changes = self.state_machine.transition(connection, success, error, self.clock())
            self.connection_repo.apply_sync_outcome(connection_id, changes, lease_owner=lease_owner)
        except SQLAlchemyError:
            logger.exception(f"Échec de la mise à jour de la connexion {connection_id} après synchronisation")

    def run_scheduled_syncs(self, now: Optional[datetime] = None,
                            should_stop: Optional[Callable[[], bool]] = None,
                            scheduled: bool = True) -> RunReport:
        """Sélectionne les connexions dues et les synchronise une par une"""
        logger.info(f"Integration scheduler triggered (scheduled: {scheduled})")

        due_connections = self.get_due_connections(now)
        if not due_connections:
            logger.info("No connections due for sync")
            return RunReport(message="No connections due for sync", timestamp=self.clock())

        logger.info(f"Found {len(due_connections)} connections due for sync")

        # Les identifiants sont figés avant la boucle: les commits expirent les objets
        targets = [(c.id, c.provider_id) for c in due_connections]
        results: List[ConnectionRunResult] = []
        cancelled = False

        for connection_id, provider_id in targets:
            if should_stop is not None and should_stop():
                logger.info("Scheduler run cancelled between connections")
                cancelled = True
                break

            connection = self.connection_repo.get_by_id(connection_id)
            if connection is None:
                continue

            logger.info(f"Syncing connection {connection_id} ({provider_id})")
            try:
                result, _ = self.run_connection(connection, SyncType.INCREMENTAL, TRIGGERED_BY_SCHEDULER)
            except LeaseUnavailableError:
                logger.info(f"  - Skipped {provider_id}: lease held by another run")
                results.append(ConnectionRunResult(
                    connection_id=connection_id, provider_id=provider_id, success=False, skipped=True,
                    error="Connection is already being synced",
                ))
                continue
            except Exception as e:
                # La prise de lease elle-même peut échouer (store indisponible)
                logger.exception(f"Échec de la préparation de la connexion {connection_id}")
                result = ConnectionRunResult(
                    connection_id=connection_id, provider_id=provider_id, success=False,
                    error=f"Unexpected error: {e}",
                )

            results.append(result)
            if result.success:
                logger.info(f"  ✓ Synced {provider_id} in {result.duration_ms}ms")
            else:
                logger.info(f"  ✗ Failed {provider_id}: {result.error}")

        processed = [r for r in results if not r.skipped]
        success_count = sum(1 for r in processed if r.success)
        failed_count = len(processed) - success_count
        total_duration = sum(r.duration_ms for r in processed)

        logger.info(f"Scheduler completed: {success_count} successful, {failed_count} failed, {total_duration}ms total")

        return RunReport(
            message="Scheduler run cancelled" if cancelled else "Scheduler run completed",
            processed_count=len(processed),
            success_count=success_count,
            failed_count=failed_count,
            skipped_count=len(results) - len(processed),
            cancelled=cancelled,
            results=results,
            timestamp=self.clock(),
        )

    def sync_connection_now(self, connection_id: int, tenant_id: Optional[str] = None,
                            sync_type: SyncType = SyncType.INCREMENTAL) -> Tuple[ConnectionRunResult, Optional[SyncResult]]:
        """Synchronisation manuelle: mêmes lease et transitions que le scheduler"""
        connection = self.connection_repo.get_for_tenant(connection_id, tenant_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        if not connection.sync_enabled:
            raise SyncDisabledError(connection_id)
        if get_provider_config(connection.provider_id) is None:
            raise UnconfiguredProviderError(connection.provider_id)

        return self.run_connection(connection, sync_type, TRIGGERED_BY_MANUAL)
