# integration_sync/core/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator

Base = declarative_base()


class DatabaseManager:
    """Singleton pour la gestion de la base de données"""
    _instance = None
    _engine = None
    _session_factory = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DatabaseManager, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._engine is None:
            self._initialize_database()

    def _initialize_database(self):
        """Initialise la connexion à la base de données"""
        database_url = self._get_database_url()

        connect_args = {}
        if database_url.startswith("sqlite"):
            # Le worker ouvre ses sessions dans un thread séparé
            connect_args["check_same_thread"] = False

        self._engine = create_engine(
            database_url,
            pool_pre_ping=True,
            pool_recycle=300,
            echo=False,
            connect_args=connect_args
        )

        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self._engine
        )

    def _get_database_url(self) -> str:
        """Construit l'URL de la base de données"""
        from integration_sync.config import settings

        return settings.database_url

    def get_session(self) -> Session:
        """Retourne une nouvelle session de base de données"""
        return self._session_factory()

    def create_tables(self):
        """Crée toutes les tables"""
        import integration_sync.models  # noqa: F401  enregistre les modèles sur Base.metadata
        Base.metadata.create_all(bind=self._engine)


# Instance singleton
db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """Générateur de session pour l'injection de dépendances FastAPI"""
    db = db_manager.get_session()
    try:
        yield db
    finally:
        db.close()
