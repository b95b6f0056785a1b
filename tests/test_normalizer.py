import pytest

from integration_sync.core.decorators import normalizer
from integration_sync.services.normalizer import NormalizedData, normalize

OKTA_USERS = [
    {"id": "u1", "status": "ACTIVE", "credentials": {"provider": {"type": "OKTA"}}},
    {"id": "u2", "status": "ACTIVE", "credentials": {"provider": {"type": "FEDERATION"}}},
    {"id": "u3", "status": "DEPROVISIONED", "credentials": {"provider": {"type": "OKTA"}}},
    {"id": "u4", "status": "STAGED"},
]

GITHUB_ALERTS = [
    {"number": 1, "security_advisory": {"severity": "critical"}},
    {"number": 2, "security_advisory": {"severity": "high"}},
    {"number": 3, "severity": "HIGH"},
    {"number": 4, "security_advisory": {"severity": "low"}},
]


def test_okta_users_summary_and_controls():
    result = normalize("okta", "users", OKTA_USERS)

    assert result.summary == {"total_users": 4, "active_users": 2, "mfa_enabled": 2}
    assert result.mapped_control_ids == ["AC-2", "IA-2", "IA-5"]


def test_github_security_alerts_reads_advisory_severity():
    result = normalize("github", "security_alerts", GITHUB_ALERTS)

    assert result.summary == {"total_alerts": 4, "critical_alerts": 1, "high_alerts": 2}
    assert result.mapped_control_ids == ["SI-2", "RA-5", "CM-4"]


def test_azure_ad_users_unwraps_odata_value():
    payload = {"value": [{"accountEnabled": True}, {"accountEnabled": False}, {"accountEnabled": True}]}

    result = normalize("azure-ad", "users", payload)

    assert result.summary == {"total_users": 3, "enabled_users": 2}


def test_crowdstrike_devices_from_resources_envelope():
    payload = {"resources": [{"status": "normal"}, {"status": "contained"}, {"status": "normal"}]}

    result = normalize("crowdstrike", "devices", payload)

    assert result.summary == {"total_devices": 3, "online_devices": 2}
    assert result.mapped_control_ids == ["SI-3", "SI-4", "IR-4"]


def test_jamf_computers_prefers_total_count():
    payload = {
        "totalCount": 10,
        "results": [{"general": {"managed": True}}, {"general": {"managed": False}}, {"general": {}}],
    }

    result = normalize("jamf", "computers", payload)

    assert result.summary == {"total_devices": 10, "managed_devices": 1}


@pytest.mark.parametrize("provider_id", ["qualys", "tenable"])
def test_vulnerability_scanners_share_normalization(provider_id):
    vulns = [{"severity": 5}, {"severity": "4"}, {"severity": 3}, {"severity": 1}, {"severity": None}]

    result = normalize(provider_id, "vulnerabilities", vulns)

    assert result.summary == {"total_vulnerabilities": 5, "critical_vulns": 2, "high_vulns": 1}
    assert result.mapped_control_ids == ["RA-5", "SI-2", "CA-7"]


def test_bamboohr_employees_counts_departments():
    payload = {"employees": [{"department": "IT"}, {"department": "IT"}, {"department": "HR"}, {}]}

    result = normalize("bamboohr", "employees", payload)

    assert result.summary == {"total_employees": 4, "departments": 2}


def test_unknown_pair_yields_empty_normalization():
    assert normalize("okta", "groups", [{"id": "g1"}]) == NormalizedData()
    assert normalize("nope", "users", []) == NormalizedData(summary={}, mapped_control_ids=[])


def test_normalization_is_deterministic():
    assert normalize("okta", "users", OKTA_USERS) == normalize("okta", "users", list(OKTA_USERS))


def test_malformed_records_raise():
    with pytest.raises(AttributeError):
        normalize("okta", "users", ["not-a-user"])


def test_duplicate_registration_is_rejected():
    with pytest.raises(ValueError):
        @normalizer("okta", "users")
        def _again(raw):
            return {}
