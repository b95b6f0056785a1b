from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import os
import socket
from pathlib import Path
from typing import Optional

root_dir = Path(__file__).parent.parent
env_path = root_dir / ".env"
load_dotenv(env_path)


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Integration Sync Pipeline"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Base de données
    DATABASE_URL: str = "sqlite:///./integration_sync.db"
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: Optional[str] = None

    # Synchronisation
    SYNC_BATCH_SIZE: int = 10
    SYNC_CALL_TIMEOUT_SECONDS: float = 60.0
    FETCH_TIMEOUT_SECONDS: float = 30.0
    BACKOFF_CAP_MINUTES: int = 1440
    FAILURE_THRESHOLD: int = 5
    DEFAULT_SYNC_FREQUENCY_MINUTES: int = 60
    LEASE_TTL_SECONDS: int = 300
    STALE_THRESHOLD_HOURS: int = 24
    USER_AGENT: str = "ComplianceDashboard-IntegrationSync/1.0"

    # Worker du scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_INTERVAL_SECONDS: int = 300
    SCHEDULER_INSTANCE_ID: Optional[str] = None

    @property
    def database_url(self) -> str:
        if self.POSTGRES_HOST:
            return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        return self.DATABASE_URL

    @property
    def instance_id(self) -> str:
        """Identifiant du propriétaire des leases pour ce processus"""
        return self.SCHEDULER_INSTANCE_ID or f"{socket.gethostname()}-{os.getpid()}"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = "ignore"
        case_sensitive = True


try:
    settings = Settings()
except Exception as e:
    print(f"❌ Settings creation failed: {e}")
    print(f"❌ Available environment variables:")
    for key, value in os.environ.items():
        if any(prefix in key for prefix in ['POSTGRES', 'DATABASE', 'SYNC', 'SCHEDULER', 'APP', 'DEBUG']):
            print(f"   {key}: {'*' * min(8, len(value)) if 'PASSWORD' in key or 'URL' in key else value}")
    raise
