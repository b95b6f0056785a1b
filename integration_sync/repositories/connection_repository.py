from typing import List, Optional, Dict, Any
from datetime import datetime, timedelta
import logging

from sqlalchemy import or_, and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from integration_sync.models.connection import IntegrationConnection, ConnectionStatus
from integration_sync.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConnectionRepository(BaseRepository[IntegrationConnection]):
    """Repository des connexions d'intégration"""

    def __init__(self, db: Session):
        super().__init__(IntegrationConnection, db)

    def get_for_tenant(self, connection_id: int, tenant_id: Optional[str] = None) -> Optional[IntegrationConnection]:
        """Récupère une connexion, restreinte au tenant si fourni"""
        try:
            query = self.db.query(self.model).filter(self.model.id == connection_id)
            if tenant_id is not None:
                query = query.filter(self.model.tenant_id == tenant_id)
            return query.first()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def get_due_connections(self, now: datetime, limit: int) -> List[IntegrationConnection]:
        """Connexions dues: connectées, sync activée, next_sync_at nul ou dépassé.

        Triées par next_sync_at croissant, les valeurs nulles en premier.
        """
        try:
            return (self.db.query(self.model)
                    .filter(self.model.status == ConnectionStatus.CONNECTED.value)
                    .filter(self.model.sync_enabled.is_(True))
                    .filter(or_(self.model.next_sync_at.is_(None), self.model.next_sync_at <= now))
                    .order_by(self.model.next_sync_at.asc().nulls_first(), self.model.id.asc())
                    .limit(limit)
                    .all())
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def acquire_lease(self, connection_id: int, owner: str, now: datetime, ttl_seconds: int) -> bool:
        """Pose le lease si libre ou expiré; un lease en cours n'est jamais repris, même par `owner`.

        Mise à jour conditionnelle en une seule requête: rowcount == 1 signifie acquis.
        """
        try:
            rowcount = (self.db.query(self.model)
                        .filter(self.model.id == connection_id)
                        .filter(or_(self.model.lease_owner.is_(None),
                                    self.model.lease_expires_at.is_(None),
                                    self.model.lease_expires_at <= now))
                        .update({
                            self.model.lease_owner: owner,
                            self.model.lease_expires_at: now + timedelta(seconds=ttl_seconds),
                        }, synchronize_session=False))
            self.db.commit()
            return rowcount == 1
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def apply_sync_outcome(self, connection_id: int, changes: Dict[str, Any],
                           lease_owner: Optional[str] = None) -> Optional[IntegrationConnection]:
        """Écrit la transition de santé/planification et libère le lease dans la même écriture"""
        obj_data = dict(changes)
        if lease_owner is not None:
            connection = self.get_by_id(connection_id)
            if connection is not None and connection.lease_owner == lease_owner:
                obj_data["lease_owner"] = None
                obj_data["lease_expires_at"] = None
        return self.update(connection_id, obj_data)

    def count_by_status(self) -> Dict[str, Dict[str, int]]:
        """Compte les connexions par status et par health_status"""
        try:
            by_status = dict(self.db.query(self.model.status, func.count(self.model.id))
                             .group_by(self.model.status).all())
            by_health = dict(self.db.query(self.model.health_status, func.count(self.model.id))
                             .group_by(self.model.health_status).all())
            return {"status": by_status, "health_status": by_health}
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def get_stale_connections(self, cutoff: datetime, limit: int = 100) -> List[IntegrationConnection]:
        """Connexions actives dont la dernière synchronisation est antérieure à `cutoff`"""
        try:
            return (self.db.query(self.model)
                    .filter(self.model.sync_enabled.is_(True))
                    .filter(or_(self.model.last_sync_at.is_(None),
                                and_(self.model.last_sync_at.isnot(None), self.model.last_sync_at < cutoff)))
                    .order_by(self.model.last_sync_at.asc().nulls_first())
                    .limit(limit)
                    .all())
        except SQLAlchemyError:
            self.db.rollback()
            raise
