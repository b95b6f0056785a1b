# integration_sync/repositories/base_repository.py
from typing import TypeVar, Generic, Optional, Type, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from integration_sync.core.database import Base

# Type générique pour les modèles
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Repository générique pour les opérations get/put/update par clé"""

    def __init__(self, model: Type[ModelType], db: Session):
        self.model = model
        self.db = db

    def get_by_id(self, id: int) -> Optional[ModelType]:
        """Récupère un enregistrement par son ID"""
        try:
            return self.db.query(self.model).filter(self.model.id == id).first()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def create(self, obj_data: Dict[str, Any]) -> ModelType:
        """Crée un nouvel enregistrement"""
        try:
            db_obj = self.model(**obj_data)
            self.db.add(db_obj)
            self.db.commit()
            self.db.refresh(db_obj)
            return db_obj
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def update(self, id: int, obj_data: Dict[str, Any]) -> Optional[ModelType]:
        """Met à jour un enregistrement existant"""
        try:
            db_obj = self.get_by_id(id)
            if db_obj:
                for field, value in obj_data.items():
                    if hasattr(db_obj, field):
                        setattr(db_obj, field, value)
                self.db.commit()
                self.db.refresh(db_obj)
            return db_obj
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def count(self) -> int:
        """Compte le nombre total d'enregistrements"""
        try:
            return self.db.query(self.model).count()
        except SQLAlchemyError:
            self.db.rollback()
            raise
