"""
Container registry token provider.

Exchanges the configured registry credentials for a short-lived access
token using the registry's OAuth2 token endpoint
(``https://{server}/oauth2/token``), as served by Azure Container Registry
and other OCI distribution registries.
"""
import logging
from typing import Iterable, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dataconvert.models import AccessToken
from .base import FailureKind, ProviderResult, TokenProvider

logger = logging.getLogger(__name__)

TOKEN_SCOPE = "repository:*:pull"


class ContainerRegistryTokenProvider(TokenProvider):
    """Issues pull tokens for configured container registries with automatic retries"""

    def __init__(
        self,
        registry_servers: Iterable[str],
        username: str = "",
        password: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the token provider.

        Args:
            registry_servers: Login servers templates may be pulled from
            username: Registry user (or service principal id)
            password: Registry password (or secret)
            timeout: HTTP request timeout in seconds
            client: Optional shared HTTP client
        """
        self.registry_servers = frozenset(s.strip().lower() for s in registry_servers if s.strip())
        self.username = username
        self._password = password
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def is_configured(self, server: str) -> bool:
        return (server or "").strip().lower() in self.registry_servers

    async def get_token(self, server: str) -> ProviderResult:
        server_key = (server or "").strip().lower()

        if not self.is_configured(server_key):
            return ProviderResult.fail(
                FailureKind.NOT_CONFIGURED,
                f"The container registry '{server}' is not configured.",
                server=server
            )

        if not self.username or not self._password:
            return ProviderResult.fail(
                FailureKind.AUTH_FAILED,
                f"No credentials are configured for container registry '{server_key}'.",
                server=server_key
            )

        try:
            client = await self._get_client()
            response = await self._request_token(client, server_key)
        except httpx.HTTPError as e:
            return ProviderResult.fail(
                FailureKind.AUTH_FAILED,
                f"Unable to reach the token endpoint of '{server_key}'.",
                cause=e,
                server=server_key
            )

        if response.status_code >= 400:
            return ProviderResult.fail(
                FailureKind.AUTH_FAILED,
                f"Token request to '{server_key}' was rejected with status {response.status_code}.",
                server=server_key,
                status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            return ProviderResult.fail(
                FailureKind.AUTH_FAILED,
                f"Token endpoint of '{server_key}' returned an unreadable response.",
                cause=e,
                server=server_key
            )

        token = payload.get("access_token") or payload.get("token") if isinstance(payload, dict) else None
        if not token:
            return ProviderResult.fail(
                FailureKind.AUTH_FAILED,
                f"Token endpoint of '{server_key}' did not issue an access token.",
                server=server_key
            )

        logger.debug("Issued registry access token for %s", server_key)
        return ProviderResult.ok(AccessToken(value=token, server=server_key), server=server_key)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _request_token(self, client: httpx.AsyncClient, server: str) -> httpx.Response:
        return await client.get(
            f"https://{server}/oauth2/token",
            params={"service": server, "scope": TOKEN_SCOPE},
            auth=(self.username, self._password),
        )
