from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, JSON, UniqueConstraint

from integration_sync.models.base import BaseModel


class IntegrationData(BaseModel):
    __tablename__ = "integration_data"
    __table_args__ = (
        UniqueConstraint("connection_id", "data_type", "external_id", name="uq_integration_data_key"),
    )

    connection_id = Column(Integer, ForeignKey("integration_connections.id"), nullable=False, index=True)
    tenant_id = Column(String(255), nullable=False)
    data_type = Column(String(100), nullable=False)
    external_id = Column(String(255), nullable=False)

    # Contenu
    raw_payload = Column(JSON)
    normalized_summary = Column(JSON, default=dict)
    mapped_control_ids = Column(JSON, default=list)

    synced_at = Column(DateTime, nullable=False)
    content_hash = Column(String(64), nullable=False)

    def __repr__(self):
        return f"<IntegrationData(connection={self.connection_id}, type='{self.data_type}', id='{self.external_id}')>"
