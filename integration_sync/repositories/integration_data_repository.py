# integration_sync/repositories/integration_data_repository.py
from typing import Any, Optional
from datetime import datetime
import enum
import hashlib
import json
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from integration_sync.models.integration_data import IntegrationData
from integration_sync.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UpsertAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def compute_content_hash(payload: Any) -> str:
    """Empreinte SHA-256 d'un payload JSON, indépendante de l'ordre des clés"""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IntegrationDataRepository(BaseRepository[IntegrationData]):
    """Repository des snapshots normalisés, avec écriture uniquement sur changement"""

    def __init__(self, db: Session):
        super().__init__(IntegrationData, db)

    def get_by_key(self, connection_id: int, data_type: str, external_id: str,
                   for_update: bool = False) -> Optional[IntegrationData]:
        """Récupère un snapshot par sa clé (connection_id, data_type, external_id)"""
        query = (self.db.query(self.model)
                 .filter(self.model.connection_id == connection_id)
                 .filter(self.model.data_type == data_type)
                 .filter(self.model.external_id == external_id))
        if for_update:
            query = query.with_for_update()
        return query.first()

    def upsert(self, connection_id: int, tenant_id: str, data_type: str, external_id: str,
               raw_payload: Any, normalized, synced_at: datetime,
               _retry_on_conflict: bool = True) -> UpsertAction:
        """
        Écrit le snapshot seulement si le hash du payload brut a changé.

        `normalized` expose `summary` et `mapped_control_ids`. La lecture se fait
        avec SELECT ... FOR UPDATE pour que comparaison et écriture restent
        atomiques; une collision de clé à l'insertion est rejouée en mise à jour.
        """
        content_hash = compute_content_hash(raw_payload)

        try:
            existing = self.get_by_key(connection_id, data_type, external_id, for_update=True)

            if existing is not None and existing.content_hash == content_hash:
                # Termine la transaction pour libérer le verrou de ligne
                self.db.commit()
                return UpsertAction.UNCHANGED

            fields = {
                "connection_id": connection_id,
                "tenant_id": tenant_id,
                "data_type": data_type,
                "external_id": external_id,
                "raw_payload": raw_payload,
                "normalized_summary": normalized.summary,
                "mapped_control_ids": list(normalized.mapped_control_ids),
                "synced_at": synced_at,
                "content_hash": content_hash,
            }

            if existing is not None:
                for field, value in fields.items():
                    setattr(existing, field, value)
                action = UpsertAction.UPDATED
            else:
                self.db.add(self.model(**fields))
                action = UpsertAction.CREATED

            self.db.commit()
            return action

        except IntegrityError:
            self.db.rollback()
            if not _retry_on_conflict:
                raise
            logger.warning(f"Conflit d'insertion concurrent sur {data_type}/{external_id}, nouvelle tentative")
            return self.upsert(connection_id, tenant_id, data_type, external_id,
                               raw_payload, normalized, synced_at, _retry_on_conflict=False)
        except SQLAlchemyError:
            self.db.rollback()
            raise
