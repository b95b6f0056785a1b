"""
Catalogue statique des providers synchronisés.

Chaque provider déclare ses endpoints (type de donnée, chemin, méthode HTTP,
base URL optionnelle) et un style de pagination. Les chemins peuvent contenir
les placeholders {org} et {tenant}, substitués depuis la config de la connexion.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ProviderEndpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    path: str
    method: str = "GET"
    base_url: Optional[str] = None


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str  # link, odata, page, offset, id
    param: str


class ProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_id: str
    endpoints: List[ProviderEndpoint]
    pagination: Optional[Pagination] = None
    # Schéma d'autorisation pour les clés d'API (Okta utilise "SSWS")
    api_key_scheme: str = "Bearer"


def _endpoints(*entries, base_url: Optional[str] = None) -> List[ProviderEndpoint]:
    return [ProviderEndpoint(type=t, path=p, base_url=base_url) for t, p in entries]


PROVIDER_SYNC_CONFIGS: Dict[str, ProviderConfig] = {
    # Fournisseurs d'identité
    "okta": ProviderConfig(
        provider_id="okta",
        endpoints=_endpoints(
            ("users", "/api/v1/users"),
            ("groups", "/api/v1/groups"),
            ("applications", "/api/v1/apps"),
            ("policies", "/api/v1/policies"),
        ),
        pagination=Pagination(type="link", param="after"),
        api_key_scheme="SSWS",
    ),
    "azure-ad": ProviderConfig(
        provider_id="azure-ad",
        endpoints=_endpoints(
            ("users", "/v1.0/users"),
            ("groups", "/v1.0/groups"),
            ("applications", "/v1.0/applications"),
            ("conditional_access", "/v1.0/identity/conditionalAccess/policies"),
            base_url="https://graph.microsoft.com",
        ),
        pagination=Pagination(type="odata", param="$skiptoken"),
    ),
    "github": ProviderConfig(
        provider_id="github",
        endpoints=_endpoints(
            ("repositories", "/user/repos"),
            ("organization_members", "/orgs/{org}/members"),
            ("security_alerts", "/orgs/{org}/dependabot/alerts"),
            ("audit_log", "/orgs/{org}/audit-log"),
            base_url="https://api.github.com",
        ),
        pagination=Pagination(type="page", param="page"),
    ),
    # EDR
    "crowdstrike": ProviderConfig(
        provider_id="crowdstrike",
        endpoints=_endpoints(
            ("devices", "/devices/queries/devices/v1"),
            ("detections", "/detects/queries/detects/v1"),
            ("vulnerabilities", "/spotlight/queries/vulnerabilities/v1"),
            ("incidents", "/incidents/queries/incidents/v1"),
        ),
        pagination=Pagination(type="offset", param="offset"),
    ),
    # MDM
    "jamf": ProviderConfig(
        provider_id="jamf",
        endpoints=_endpoints(
            ("computers", "/api/v1/computers-inventory"),
            ("mobile_devices", "/api/v2/mobile-devices"),
            ("policies", "/api/v1/policies"),
            ("configuration_profiles", "/api/v1/configuration-profiles"),
        ),
        pagination=Pagination(type="page", param="page"),
    ),
    # Scanners de vulnérabilités
    "qualys": ProviderConfig(
        provider_id="qualys",
        endpoints=_endpoints(
            ("host_list", "/api/2.0/fo/asset/host/?action=list"),
            ("vulnerabilities", "/api/2.0/fo/knowledge_base/vuln/?action=list"),
            ("scan_list", "/api/2.0/fo/scan/?action=list"),
        ),
        pagination=Pagination(type="id", param="id_min"),
    ),
    "tenable": ProviderConfig(
        provider_id="tenable",
        endpoints=_endpoints(
            ("assets", "/assets"),
            ("vulnerabilities", "/workbenches/vulnerabilities"),
            ("scans", "/scans"),
        ),
        pagination=Pagination(type="offset", param="offset"),
    ),
    # SIEM
    "splunk": ProviderConfig(
        provider_id="splunk",
        endpoints=_endpoints(
            ("saved_searches", "/services/saved/searches"),
            ("alerts", "/services/alerts/fired_alerts"),
        ),
        pagination=Pagination(type="offset", param="offset"),
    ),
    # RH
    "workday": ProviderConfig(
        provider_id="workday",
        endpoints=_endpoints(
            ("workers", "/ccx/service/{tenant}/Human_Resources/v40.1"),
        ),
        pagination=Pagination(type="page", param="page"),
    ),
    "bamboohr": ProviderConfig(
        provider_id="bamboohr",
        endpoints=_endpoints(
            ("employees", "/v1/employees/directory"),
            ("time_off", "/v1/time_off/requests"),
        ),
    ),
}


def get_provider_config(provider_id: str) -> Optional[ProviderConfig]:
    """Retourne la configuration d'un provider, ou None s'il n'est pas supporté"""
    return PROVIDER_SYNC_CONFIGS.get(provider_id)


def list_provider_ids() -> List[str]:
    return sorted(PROVIDER_SYNC_CONFIGS)
