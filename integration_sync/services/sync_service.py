"""
Sync Executor: exécute tous les endpoints d'une connexion.

Chaque endpoint est indépendant: un échec (timeout, statut non-2xx, payload
invalide) est enregistré dans la liste d'erreurs et n'interrompt pas les
suivants. Le SyncLog est ouvert au démarrage et clôturé exactement une fois,
y compris sur exception inattendue.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from integration_sync.core.clock import utcnow
from integration_sync.core.exceptions import (
    FetchError,
    MalformedPayloadError,
    SyncTimeoutError,
    UnconfiguredProviderError,
)
from integration_sync.external.provider_client import ProviderClient
from integration_sync.models.connection import IntegrationConnection
from integration_sync.models.sync_log import SyncLogStatus, SyncType
from integration_sync.repositories.integration_data_repository import IntegrationDataRepository, UpsertAction
from integration_sync.repositories.sync_repository import SyncRepository
from integration_sync.services.normalizer import NormalizedData, normalize
from integration_sync.services.provider_registry import ProviderConfig, get_provider_config

logger = logging.getLogger(__name__)


class SyncResult(BaseModel):
    success: bool
    connection_id: int
    provider_id: str
    sync_log_id: Optional[int] = None
    processed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    errors: List[Dict[str, str]] = Field(default_factory=list)
    # Erreur de niveau connexion (provider non configuré)
    error: Optional[str] = None
    synced_at: datetime
    duration_ms: int = 0

    @property
    def first_error(self) -> Optional[str]:
        if self.error:
            return self.error
        if self.errors:
            return self.errors[0]["message"]
        return None

    def counts(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
        }


def aggregate_external_id(data_type: str) -> str:
    """Clé déterministe d'un snapshot agrégé par type de donnée"""
    return f"{data_type}-aggregate"


class SyncService:
    def __init__(self, db: Session, provider_client: ProviderClient,
                 clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.provider_client = provider_client
        self.sync_repo = SyncRepository(db)
        self.data_repo = IntegrationDataRepository(db)
        self.clock = clock

    def _normalize(self, provider_id: str, data_type: str, payload: Any) -> NormalizedData:
        try:
            return normalize(provider_id, data_type, payload)
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            raise MalformedPayloadError(data_type, type(e).__name__)

    def sync_connection(self, connection: IntegrationConnection,
                        sync_type: SyncType = SyncType.INCREMENTAL,
                        triggered_by: Optional[str] = None,
                        deadline: Optional[float] = None,
                        timeout_seconds: Optional[float] = None) -> SyncResult:
        """
        Synchronise une connexion.

        `deadline` est une échéance time.monotonic(): elle est vérifiée avant chaque
        endpoint et borne le timeout de chaque fetch. Son dépassement lève
        SyncTimeoutError après clôture du log en échec.
        """
        connection_id = connection.id
        tenant_id = connection.tenant_id
        provider_id = connection.provider_id

        provider = get_provider_config(provider_id)
        if provider is None:
            error = UnconfiguredProviderError(provider_id)
            logger.warning(f"Connexion {connection_id}: {error.message}")
            return SyncResult(
                success=False,
                connection_id=connection_id,
                provider_id=provider_id,
                error=error.message,
                synced_at=self.clock(),
            )

        start = time.monotonic()
        sync_log = self.sync_repo.open_log(
            connection_id, tenant_id, SyncType(sync_type).value, self.clock(), triggered_by
        )
        sync_log_id = sync_log.id
        counts = {"processed": 0, "created": 0, "updated": 0, "deleted": 0}
        errors: List[Dict[str, str]] = []

        current_endpoint = None
        try:
            for endpoint in provider.endpoints:
                current_endpoint = endpoint.type
                remaining = None
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise SyncTimeoutError(timeout_seconds or 0)

                try:
                    action = self._sync_endpoint(provider, endpoint, connection_id, tenant_id,
                                                 connection, remaining)
                except FetchError as e:
                    logger.warning(f"Connexion {connection_id}: endpoint {endpoint.type} en échec: {e.message}")
                    errors.append({"endpoint": endpoint.type, "message": e.message})
                    continue

                counts["processed"] += 1
                if action == UpsertAction.CREATED:
                    counts["created"] += 1
                elif action == UpsertAction.UPDATED:
                    counts["updated"] += 1

        except Exception as e:
            self.db.rollback()
            message = e.message if isinstance(e, SyncTimeoutError) else f"Unexpected error: {e}"
            errors.append({"endpoint": current_endpoint or "sync", "message": message})
            self._close_log(sync_log_id, SyncLogStatus.FAILED, counts, errors, start)
            e.sync_log_id = sync_log_id
            raise

        success = len(errors) == 0
        status = SyncLogStatus.COMPLETED if success else SyncLogStatus.FAILED
        duration_ms = self._close_log(sync_log_id, status, counts, errors, start)

        logger.info(
            f"Connexion {connection_id} ({provider_id}) synchronisée: "
            f"{counts['processed']} traités, {counts['created']} créés, "
            f"{counts['updated']} mis à jour, {len(errors)} erreurs en {duration_ms}ms"
        )

        return SyncResult(
            success=success,
            connection_id=connection_id,
            provider_id=provider_id,
            sync_log_id=sync_log_id,
            errors=errors,
            synced_at=self.clock(),
            duration_ms=duration_ms,
            **counts,
        )

    def _sync_endpoint(self, provider: ProviderConfig, endpoint, connection_id: int, tenant_id: str,
                       connection: IntegrationConnection, timeout: Optional[float]) -> UpsertAction:
        payload = self.provider_client.fetch(provider, endpoint, connection, timeout=timeout)
        normalized = self._normalize(provider.provider_id, endpoint.type, payload)
        return self.data_repo.upsert(
            connection_id=connection_id,
            tenant_id=tenant_id,
            data_type=endpoint.type,
            external_id=aggregate_external_id(endpoint.type),
            raw_payload=payload,
            normalized=normalized,
            synced_at=self.clock(),
        )

    def _close_log(self, sync_log_id: int, status: SyncLogStatus, counts: Dict[str, int],
                   errors: List[Dict[str, str]], start: float) -> int:
        duration_ms = int((time.monotonic() - start) * 1000)
        try:
            self.sync_repo.close_log(sync_log_id, status, counts, errors, self.clock(), duration_ms)
        except Exception:
            logger.exception(f"Impossible de clôturer le sync log {sync_log_id}")
            raise
        return duration_ms
