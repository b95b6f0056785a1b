"""
Normalisation des payloads providers.

Chaque fonction est pure: payload brut -> résumé normalisé. Les identifiants de
contrôles de conformité associés sont déclarés à l'enregistrement.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from integration_sync.core.decorators import NORMALIZERS, normalizer


class NormalizedData(BaseModel):
    summary: Dict[str, Any] = Field(default_factory=dict)
    mapped_control_ids: List[str] = Field(default_factory=list)


def _records(raw: Any, *keys: str) -> List[Any]:
    """Extrait la liste d'enregistrements d'un payload liste ou enveloppé"""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        for key in keys:
            value = raw.get(key)
            if isinstance(value, list):
                return value
    return []


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@normalizer("okta", "users", mapped_controls=["AC-2", "IA-2", "IA-5"])
def normalize_okta_users(raw: Any) -> Dict[str, Any]:
    users = _records(raw)
    return {
        "total_users": len(users),
        "active_users": sum(1 for u in users if u.get("status") == "ACTIVE"),
        "mfa_enabled": sum(
            1 for u in users
            if ((u.get("credentials") or {}).get("provider") or {}).get("type") == "OKTA"
        ),
    }


@normalizer("azure-ad", "users", mapped_controls=["AC-2", "IA-2"])
def normalize_azure_ad_users(raw: Any) -> Dict[str, Any]:
    users = _records(raw, "value")
    return {
        "total_users": len(users),
        "enabled_users": sum(1 for u in users if u.get("accountEnabled") is True),
    }


def _alert_severity(alert: Dict[str, Any]) -> Optional[str]:
    # Les alertes Dependabot portent la sévérité dans security_advisory
    severity = alert.get("severity") or (alert.get("security_advisory") or {}).get("severity")
    return severity.lower() if isinstance(severity, str) else None


@normalizer("github", "security_alerts", mapped_controls=["SI-2", "RA-5", "CM-4"])
def normalize_github_security_alerts(raw: Any) -> Dict[str, Any]:
    alerts = _records(raw)
    severities = [_alert_severity(a) for a in alerts]
    return {
        "total_alerts": len(alerts),
        "critical_alerts": severities.count("critical"),
        "high_alerts": severities.count("high"),
    }


@normalizer("crowdstrike", "devices", mapped_controls=["SI-3", "SI-4", "IR-4"])
def normalize_crowdstrike_devices(raw: Any) -> Dict[str, Any]:
    devices = _records(raw, "resources")
    return {
        "total_devices": len(devices),
        "online_devices": sum(1 for d in devices if isinstance(d, dict) and d.get("status") == "normal"),
    }


@normalizer("jamf", "computers", mapped_controls=["CM-2", "CM-3", "CM-6"])
def normalize_jamf_computers(raw: Any) -> Dict[str, Any]:
    results = _records(raw, "results")
    total = raw.get("totalCount") if isinstance(raw, dict) else None
    return {
        "total_devices": _as_int(total) if _as_int(total) is not None else len(results),
        "managed_devices": sum(1 for d in results if (d.get("general") or {}).get("managed")),
    }


@normalizer(["qualys", "tenable"], "vulnerabilities", mapped_controls=["RA-5", "SI-2", "CA-7"])
def normalize_vulnerabilities(raw: Any) -> Dict[str, Any]:
    vulns = _records(raw, "vulnerabilities")
    severities = [_as_int(v.get("severity")) for v in vulns]
    return {
        "total_vulnerabilities": len(vulns),
        "critical_vulns": sum(1 for s in severities if s is not None and s >= 4),
        "high_vulns": sum(1 for s in severities if s == 3),
    }


@normalizer("bamboohr", "employees", mapped_controls=["PS-4", "PS-5"])
def normalize_bamboohr_employees(raw: Any) -> Dict[str, Any]:
    employees = _records(raw, "employees")
    return {
        "total_employees": len(employees),
        "departments": len({e.get("department") for e in employees if e.get("department")}),
    }


def normalize(provider_id: str, data_type: str, raw_payload: Any) -> NormalizedData:
    """Applique la normalisation enregistrée pour (provider, type); vide si aucune"""
    entry = NORMALIZERS.get((provider_id, data_type))
    if entry is None:
        return NormalizedData()
    return NormalizedData(
        summary=entry["function"](raw_payload),
        mapped_control_ids=list(entry["mapped_controls"]),
    )
