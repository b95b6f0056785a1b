"""
Machine d'état santé/backoff des connexions.

    connected --(failures >= seuil)--> error
    error     --(succès)-------------> connected

Orthogonale à health_status et au flag sync_enabled, que la machine ne
désactive jamais. Les transitions sont pures: elles calculent les champs à
écrire, le repository les applique.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from integration_sync.models.connection import ConnectionStatus, HealthStatus, IntegrationConnection

DEFAULT_CAP_MINUTES = 1440
DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_FREQUENCY_MINUTES = 60


def compute_next_run(frequency_minutes: int, consecutive_failures: int,
                     cap_minutes: int = DEFAULT_CAP_MINUTES) -> timedelta:
    """Délai avant la prochaine synchronisation.

    Sans échec: la fréquence nominale. Après n échecs consécutifs:
    min(fréquence * 2^(n-1), cap).
    """
    if consecutive_failures <= 0:
        return timedelta(minutes=frequency_minutes)
    return timedelta(minutes=min(frequency_minutes * 2 ** (consecutive_failures - 1), cap_minutes))


class ConnectionStateMachine:
    def __init__(self, cap_minutes: int = DEFAULT_CAP_MINUTES,
                 failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
                 default_frequency_minutes: int = DEFAULT_FREQUENCY_MINUTES):
        self.cap_minutes = cap_minutes
        self.failure_threshold = failure_threshold
        self.default_frequency_minutes = default_frequency_minutes

    def _frequency(self, connection: IntegrationConnection) -> int:
        frequency = connection.sync_frequency_minutes
        if not frequency or frequency < 1:
            return self.default_frequency_minutes
        return frequency

    def on_success(self, connection: IntegrationConnection, now: datetime) -> Dict[str, Any]:
        return {
            "last_sync_at": now,
            "next_sync_at": now + compute_next_run(self._frequency(connection), 0, self.cap_minutes),
            "consecutive_failures": 0,
            "error_message": None,
            "status": ConnectionStatus.CONNECTED.value,
            "health_status": HealthStatus.HEALTHY.value,
        }

    def on_failure(self, connection: IntegrationConnection, error_message: Optional[str],
                   now: datetime) -> Dict[str, Any]:
        failures = (connection.consecutive_failures or 0) + 1
        changes = {
            "last_sync_at": now,
            "next_sync_at": now + compute_next_run(self._frequency(connection), failures, self.cap_minutes),
            "consecutive_failures": failures,
            "error_message": error_message or "Sync failed",
        }
        if failures >= self.failure_threshold:
            changes["status"] = ConnectionStatus.ERROR.value
            changes["health_status"] = HealthStatus.UNHEALTHY.value
        return changes

    def transition(self, connection: IntegrationConnection, success: bool,
                   error_message: Optional[str], now: datetime) -> Dict[str, Any]:
        if success:
            return self.on_success(connection, now)
        return self.on_failure(connection, error_message, now)
