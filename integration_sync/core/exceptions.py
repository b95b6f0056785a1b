"""
Erreurs typées du pipeline de synchronisation.

Les erreurs de configuration (connexion introuvable, sync désactivée,
provider inconnu) sont rejetées avant tout appel externe. Les erreurs
d'endpoint (FetchError) restent locales au Sync Executor.
"""

from typing import Optional


class IntegrationSyncError(Exception):
    """Erreur de base du pipeline, porte un code HTTP pour la couche API"""

    status_code: int = 500
    # Log de synchronisation clôturé avant la propagation, le cas échéant
    sync_log_id: Optional[int] = None

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ConnectionNotFoundError(IntegrationSyncError):
    status_code = 404

    def __init__(self, connection_id: int) -> None:
        self.connection_id = connection_id
        super().__init__(f"Connection not found: {connection_id}")


class SyncDisabledError(IntegrationSyncError):
    status_code = 400

    def __init__(self, connection_id: int) -> None:
        self.connection_id = connection_id
        super().__init__("Sync is disabled for this connection")


class UnconfiguredProviderError(IntegrationSyncError):
    status_code = 400

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"No sync configuration for provider: {provider_id}")


class LeaseUnavailableError(IntegrationSyncError):
    status_code = 409

    def __init__(self, connection_id: int, owner: Optional[str] = None) -> None:
        self.connection_id = connection_id
        self.owner = owner
        super().__init__(f"Connection {connection_id} is already being synced")


class FetchError(IntegrationSyncError):
    """Échec d'un appel endpoint: statut HTTP non-2xx, timeout ou payload invalide"""

    status_code = 502

    def __init__(
        self,
        endpoint: str,
        message: str,
        http_status: Optional[int] = None,
        timed_out: bool = False,
    ) -> None:
        self.endpoint = endpoint
        self.http_status = http_status
        self.timed_out = timed_out
        super().__init__(f"Failed to fetch {endpoint}: {message}")


class SyncTimeoutError(IntegrationSyncError):
    status_code = 504

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Sync timed out after {timeout_seconds:g}s")


class MalformedPayloadError(FetchError):
    """Payload reçu mais inexploitable par la normalisation"""

    def __init__(self, endpoint: str, reason: str) -> None:
        super().__init__(endpoint, f"malformed payload ({reason})")
