import logging
import re
from typing import Any, Callable, Dict, Optional

import requests

from integration_sync.core.exceptions import FetchError
from integration_sync.models.connection import AuthType, IntegrationConnection
from integration_sync.services.provider_registry import ProviderConfig, ProviderEndpoint

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

# Placeholder de chemin -> clé de la config de la connexion
PATH_PARAMETERS = {
    "org": "organization",
    "tenant": "tenant",
}


class CredentialResolver:
    """Fournit le secret d'une connexion; le déchiffrement est délégué à `decrypt`"""

    def __init__(self, decrypt: Optional[Callable[[str], str]] = None):
        self._decrypt = decrypt or (lambda value: value)

    def resolve(self, connection: IntegrationConnection) -> Optional[str]:
        if connection.auth_type == AuthType.OAUTH2.value:
            secret = connection.access_token_encrypted
        else:
            secret = connection.credentials_encrypted
        return self._decrypt(secret) if secret else None


class ProviderClient:
    """Exécute un appel HTTP borné dans le temps par endpoint provider, sans retry"""

    def __init__(self, timeout: float = 30.0, user_agent: str = "ComplianceDashboard-IntegrationSync/1.0",
                 credential_resolver: Optional[CredentialResolver] = None,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.user_agent = user_agent
        self.credential_resolver = credential_resolver or CredentialResolver()
        self.session = session or requests.Session()

    def build_url(self, endpoint: ProviderEndpoint, connection: IntegrationConnection) -> str:
        """Construit l'URL cible en substituant les paramètres de chemin de la connexion"""
        config = connection.config or {}
        base_url = endpoint.base_url or config.get("baseUrl") or config.get("base_url") or ""
        url = f"{base_url.rstrip('/')}{endpoint.path}"

        def substitute(match: re.Match) -> str:
            key = PATH_PARAMETERS.get(match.group(1), match.group(1))
            value = config.get(key)
            if not value:
                raise FetchError(endpoint.type, f"missing path parameter '{key}' in connection config")
            return str(value)

        return _PLACEHOLDER.sub(substitute, url)

    def build_headers(self, provider: ProviderConfig, connection: IntegrationConnection) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        secret = self.credential_resolver.resolve(connection)
        if secret:
            if connection.auth_type == AuthType.OAUTH2.value:
                headers["Authorization"] = f"Bearer {secret}"
            else:
                headers["Authorization"] = f"{provider.api_key_scheme} {secret}"
        return headers

    def fetch(self, provider: ProviderConfig, endpoint: ProviderEndpoint,
              connection: IntegrationConnection, timeout: Optional[float] = None) -> Any:
        """
        Récupère le payload brut d'un endpoint.

        Lève FetchError sur timeout, statut non-2xx, erreur réseau ou JSON invalide.
        Aucune nouvelle tentative ici: le retry relève du backoff au prochain cycle.
        """
        url = self.build_url(endpoint, connection)
        headers = self.build_headers(provider, connection)
        effective_timeout = self.timeout if timeout is None else min(self.timeout, timeout)

        logger.debug(f"Fetch {provider.provider_id}/{endpoint.type} (timeout={effective_timeout:.1f}s)")

        try:
            response = self.session.request(
                endpoint.method,
                url,
                headers=headers,
                timeout=effective_timeout,
            )
        except requests.Timeout:
            raise FetchError(endpoint.type, "timeout", timed_out=True)
        except requests.RequestException as e:
            raise FetchError(endpoint.type, f"request failed ({type(e).__name__})")

        if not 200 <= response.status_code < 300:
            raise FetchError(
                endpoint.type,
                f"API returned {response.status_code}: {response.reason or ''}".rstrip(": "),
                http_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            raise FetchError(endpoint.type, "malformed payload (invalid JSON)", http_status=response.status_code)
