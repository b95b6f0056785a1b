from datetime import timedelta
from types import SimpleNamespace

import pytest

from integration_sync.services.backoff import ConnectionStateMachine, compute_next_run
from tests.conftest import NOW


def _connection(**overrides):
    data = {
        "sync_frequency_minutes": 60,
        "consecutive_failures": 0,
        "status": "connected",
        "health_status": "healthy",
        "error_message": None,
        "sync_enabled": True,
    }
    data.update(overrides)
    return SimpleNamespace(**data)


def _apply(connection, changes):
    for field, value in changes.items():
        setattr(connection, field, value)


def test_compute_next_run_without_failures_uses_frequency():
    assert compute_next_run(60, 0) == timedelta(minutes=60)


@pytest.mark.parametrize("failures, minutes", [
    (1, 60), (2, 120), (3, 240), (4, 480), (5, 960), (6, 1440), (7, 1440), (30, 1440),
])
def test_compute_next_run_doubles_until_cap(failures, minutes):
    assert compute_next_run(60, failures, cap_minutes=1440) == timedelta(minutes=minutes)


def test_repeated_failures_produce_capped_exponential_deltas():
    machine = ConnectionStateMachine(cap_minutes=1440, failure_threshold=5)
    connection = _connection()

    deltas = []
    for _ in range(8):
        changes = machine.on_failure(connection, "boom", NOW)
        deltas.append((changes["next_sync_at"] - NOW).total_seconds() / 60)
        _apply(connection, changes)

    assert deltas == [60, 120, 240, 480, 960, 1440, 1440, 1440]
    assert connection.consecutive_failures == 8


def test_fifth_failure_marks_connection_error_and_unhealthy():
    machine = ConnectionStateMachine(failure_threshold=5)
    connection = _connection(consecutive_failures=4)

    changes = machine.on_failure(connection, "API returned 500", NOW)

    assert changes["consecutive_failures"] == 5
    assert changes["status"] == "error"
    assert changes["health_status"] == "unhealthy"
    assert changes["error_message"] == "API returned 500"


def test_failure_below_threshold_leaves_status_untouched():
    machine = ConnectionStateMachine(failure_threshold=5)
    connection = _connection(consecutive_failures=3)

    changes = machine.on_failure(connection, "timeout", NOW)

    assert changes["consecutive_failures"] == 4
    assert "status" not in changes
    assert "health_status" not in changes


def test_success_after_four_failures_never_reaches_threshold():
    machine = ConnectionStateMachine(failure_threshold=5)
    connection = _connection(consecutive_failures=4, error_message="timeout")

    changes = machine.on_success(connection, NOW)

    assert changes["consecutive_failures"] == 0
    assert changes["status"] == "connected"
    assert changes["error_message"] is None


def test_success_recovers_connection_in_error():
    machine = ConnectionStateMachine()
    connection = _connection(consecutive_failures=4, status="error", health_status="unhealthy",
                             error_message="API returned 401: Unauthorized")

    _apply(connection, machine.transition(connection, True, None, NOW))

    assert connection.consecutive_failures == 0
    assert connection.status == "connected"
    assert connection.health_status == "healthy"
    assert connection.error_message is None
    assert connection.next_sync_at == NOW + timedelta(minutes=60)
    assert connection.last_sync_at == NOW


def test_next_sync_is_always_in_the_future():
    machine = ConnectionStateMachine()
    for frequency in (None, 0, -5, 1, 60):
        connection = _connection(sync_frequency_minutes=frequency)
        assert machine.on_success(connection, NOW)["next_sync_at"] > NOW
        assert machine.on_failure(connection, "x", NOW)["next_sync_at"] > NOW


def test_invalid_frequency_falls_back_to_default():
    machine = ConnectionStateMachine(default_frequency_minutes=60)
    connection = _connection(sync_frequency_minutes=None)

    assert machine.on_success(connection, NOW)["next_sync_at"] == NOW + timedelta(minutes=60)


def test_state_machine_never_disables_sync():
    machine = ConnectionStateMachine()
    connection = _connection(consecutive_failures=50, status="error")

    changes = machine.on_failure(connection, "still failing", NOW)

    assert "sync_enabled" not in changes
    assert changes["next_sync_at"] == NOW + timedelta(minutes=1440)
