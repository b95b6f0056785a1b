import time

import pytest

from integration_sync.core.exceptions import FetchError, SyncTimeoutError
from integration_sync.models.integration_data import IntegrationData
from integration_sync.models.sync_log import IntegrationSyncLog
from integration_sync.services.sync_service import SyncService, aggregate_external_id
from tests.conftest import NOW, FakeProviderClient, timeout_error

OKTA_USERS = [
    {"id": "u1", "status": "ACTIVE", "credentials": {"provider": {"type": "OKTA"}}},
    {"id": "u2", "status": "SUSPENDED", "credentials": {"provider": {"type": "OKTA"}}},
]


def _service(db, client):
    return SyncService(db, client, clock=lambda: NOW)


def _logs(db):
    return db.query(IntegrationSyncLog).order_by(IntegrationSyncLog.id).all()


def test_all_endpoints_succeed(db, make_connection):
    connection = make_connection()
    client = FakeProviderClient({"users": OKTA_USERS})

    result = _service(db, client).sync_connection(connection, triggered_by="manual")

    assert result.success is True
    assert result.processed == 4
    assert result.created == 4
    assert result.errors == []
    assert [c["endpoint"] for c in client.calls] == ["users", "groups", "applications", "policies"]

    log = db.get(IntegrationSyncLog, result.sync_log_id)
    assert log.status == "completed"
    assert log.triggered_by == "manual"
    assert log.records_created == 4
    assert log.completed_at == NOW

    users = db.query(IntegrationData).filter_by(data_type="users").one()
    assert users.external_id == aggregate_external_id("users")
    assert users.normalized_summary == {"total_users": 2, "active_users": 1, "mfa_enabled": 2}
    assert users.mapped_control_ids == ["AC-2", "IA-2", "IA-5"]


def test_partial_failure_keeps_other_endpoints(db, make_connection):
    connection = make_connection()
    client = FakeProviderClient({"groups": timeout_error("groups")})

    result = _service(db, client).sync_connection(connection)

    assert result.success is False
    assert result.processed == 3
    assert result.created == 3
    assert result.errors == [{"endpoint": "groups", "message": "Failed to fetch groups: timeout"}]
    assert len(client.calls) == 4

    log = _logs(db)[0]
    assert log.status == "failed"
    assert log.records_processed == 3
    assert log.errors == result.errors


def test_replay_reports_unchanged_records(db, make_connection):
    connection = make_connection()
    client = FakeProviderClient({"users": OKTA_USERS})
    service = _service(db, client)

    service.sync_connection(connection)
    second = service.sync_connection(connection)

    assert second.success is True
    assert second.processed == 4
    assert second.created == 0
    assert second.updated == 0
    assert db.query(IntegrationData).count() == 4


def test_changed_payload_reports_updates(db, make_connection):
    connection = make_connection()
    client = FakeProviderClient({"users": OKTA_USERS})
    service = _service(db, client)
    service.sync_connection(connection)

    client.responses["users"] = OKTA_USERS[:1]
    result = service.sync_connection(connection)

    assert result.updated == 1
    assert result.created == 0


def test_unconfigured_provider_fails_without_log(db, make_connection):
    connection = make_connection(provider_id="unknown-provider")
    client = FakeProviderClient()

    result = _service(db, client).sync_connection(connection)

    assert result.success is False
    assert result.error == "No sync configuration for provider: unknown-provider"
    assert result.sync_log_id is None
    assert client.calls == []
    assert _logs(db) == []


def test_malformed_payload_is_an_endpoint_error(db, make_connection):
    connection = make_connection()
    client = FakeProviderClient({"users": ["not-a-user"]})

    result = _service(db, client).sync_connection(connection)

    assert result.success is False
    assert result.processed == 3
    assert result.errors[0]["endpoint"] == "users"
    assert "malformed payload" in result.errors[0]["message"]


def test_http_error_message_is_recorded(db, make_connection):
    connection = make_connection()
    error = FetchError("policies", "API returned 403: Forbidden", http_status=403)
    client = FakeProviderClient({"policies": error})

    result = _service(db, client).sync_connection(connection)

    assert result.first_error == "Failed to fetch policies: API returned 403: Forbidden"


def test_unexpected_error_closes_log_and_propagates(db, make_connection):
    connection = make_connection()
    client = FakeProviderClient({"applications": RuntimeError("boom")})

    with pytest.raises(RuntimeError) as exc:
        _service(db, client).sync_connection(connection)

    log = _logs(db)[0]
    assert exc.value.sync_log_id == log.id
    assert log.status == "failed"
    assert log.completed_at is not None
    assert log.errors[-1] == {"endpoint": "applications", "message": "Unexpected error: boom"}


def test_expired_deadline_raises_timeout(db, make_connection):
    connection = make_connection()
    client = FakeProviderClient()

    with pytest.raises(SyncTimeoutError) as exc:
        _service(db, client).sync_connection(connection, deadline=time.monotonic() - 1, timeout_seconds=60)

    assert exc.value.message == "Sync timed out after 60s"
    assert exc.value.sync_log_id == _logs(db)[0].id
    assert client.calls == []
    log = _logs(db)[0]
    assert log.status == "failed"
    assert log.errors == [{"endpoint": "users", "message": "Sync timed out after 60s"}]


def test_fetch_timeout_is_bounded_by_deadline(db, make_connection):
    connection = make_connection()
    client = FakeProviderClient()

    _service(db, client).sync_connection(connection, deadline=time.monotonic() + 20, timeout_seconds=20)

    assert all(0 < call["timeout"] <= 20 for call in client.calls)
