from .base import BaseModel
from .connection import IntegrationConnection, ConnectionStatus, HealthStatus, AuthType
from .sync_log import IntegrationSyncLog, SyncType, SyncLogStatus
from .integration_data import IntegrationData

__all__ = [
    "BaseModel",
    "IntegrationConnection", "ConnectionStatus", "HealthStatus", "AuthType",
    "IntegrationSyncLog", "SyncType", "SyncLogStatus",
    "IntegrationData",
]
