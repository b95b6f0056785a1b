from sqlalchemy import Column, String, Boolean, Integer, DateTime, Text, JSON
from sqlalchemy.orm import relationship
import enum

from integration_sync.models.base import BaseModel


class ConnectionStatus(str, enum.Enum):
    CONNECTED = "connected"
    ERROR = "error"


class HealthStatus(str, enum.Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class AuthType(str, enum.Enum):
    OAUTH2 = "oauth2"
    API_KEY = "api_key"


class IntegrationConnection(BaseModel):
    __tablename__ = "integration_connections"

    # Identité
    tenant_id = Column(String(255), nullable=False, index=True)
    provider_id = Column(String(100), nullable=False, index=True)
    name = Column(String(255))

    # Authentification (le déchiffrement est hors pipeline)
    auth_type = Column(String(50), default=AuthType.API_KEY.value, nullable=False)
    access_token_encrypted = Column(Text)
    credentials_encrypted = Column(Text)

    # Configuration spécifique au provider (organization, tenant, baseUrl...)
    config = Column(JSON, default=dict)

    # Planification
    sync_enabled = Column(Boolean, default=True, nullable=False)
    sync_frequency_minutes = Column(Integer, default=60, nullable=False)
    last_sync_at = Column(DateTime)
    next_sync_at = Column(DateTime, index=True)

    # Santé
    status = Column(String(50), default=ConnectionStatus.CONNECTED.value, nullable=False, index=True)
    health_status = Column(String(50), default=HealthStatus.HEALTHY.value, nullable=False)
    consecutive_failures = Column(Integer, default=0, nullable=False)
    error_message = Column(Text)

    # Lease: au plus une synchronisation concurrente par connexion
    lease_owner = Column(String(255))
    lease_expires_at = Column(DateTime)

    sync_logs = relationship("IntegrationSyncLog", back_populates="connection")

    def __repr__(self):
        return f"<IntegrationConnection(id={self.id}, provider='{self.provider_id}', status='{self.status}')>"

    def to_dict(self):
        """Convertit le modèle en dictionnaire, sans aucun secret"""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "provider_id": self.provider_id,
            "name": self.name,
            "auth_type": self.auth_type,
            "sync_enabled": self.sync_enabled,
            "sync_frequency_minutes": self.sync_frequency_minutes,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "next_sync_at": self.next_sync_at.isoformat() if self.next_sync_at else None,
            "status": self.status,
            "health_status": self.health_status,
            "consecutive_failures": self.consecutive_failures,
            "error_message": self.error_message,
        }
