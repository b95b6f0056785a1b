from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import integration_sync.models  # noqa: F401  enregistre les tables
from integration_sync.core.database import Base
from integration_sync.core.exceptions import FetchError
from integration_sync.models.connection import IntegrationConnection

NOW = datetime(2026, 10, 18, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_connection(db):
    def _make(**overrides) -> IntegrationConnection:
        data = {
            "tenant_id": "tenant-1",
            "provider_id": "okta",
            "auth_type": "api_key",
            "credentials_encrypted": "secret-token",
            "config": {"baseUrl": "https://acme.okta.com"},
            "sync_enabled": True,
            "sync_frequency_minutes": 60,
            "status": "connected",
            "health_status": "healthy",
            "consecutive_failures": 0,
        }
        data.update(overrides)
        connection = IntegrationConnection(**data)
        db.add(connection)
        db.commit()
        db.refresh(connection)
        return connection

    return _make


class FakeProviderClient:
    """Client provider en mémoire: payload ou exception par type d'endpoint"""

    def __init__(self, responses: Optional[Dict[str, Any]] = None, default: Any = None):
        self.responses = responses or {}
        self.default = default if default is not None else []
        self.calls: List[Dict[str, Any]] = []

    def fetch(self, provider, endpoint, connection, timeout=None):
        self.calls.append({"provider": provider.provider_id, "endpoint": endpoint.type, "timeout": timeout})
        response = self.responses.get(endpoint.type, self.default)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_client():
    return FakeProviderClient()


def timeout_error(endpoint: str) -> FetchError:
    return FetchError(endpoint, "timeout", timed_out=True)
