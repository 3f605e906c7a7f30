"""
HTTP client for the external identity provider's backend API.
"""
import logging
from typing import Dict, List, Optional

import httpx

from marketplace.core import config

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """The identity provider rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List[Dict]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class IdentityProviderClient:
    def __init__(self, api_url: str = None, secret_key: str = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 10.0):
        self.api_url = (api_url or config.IDENTITY_API_URL).rstrip("/")
        self.secret_key = secret_key or config.IDENTITY_SECRET_KEY
        self._transport = transport
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        async with httpx.AsyncClient(
            base_url=self.api_url, headers=headers, timeout=self._timeout, transport=self._transport
        ) as client:
            return await client.request(method, path, **kwargs)

    async def get_session(self, session_id: str) -> Optional[Dict]:
        """Look up a session; None when the provider does not know it."""
        response = await self._request("GET", f"/sessions/{session_id}")
        if response.status_code in (400, 404):
            return None
        response.raise_for_status()
        return response.json()

    async def get_user(self, user_id: str) -> Optional[Dict]:
        response = await self._request("GET", f"/users/{user_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def find_users_by_email(self, email: str) -> List[Dict]:
        response = await self._request("GET", "/users", params={"email_address": [email]})
        response.raise_for_status()
        return response.json()

    async def create_user(self, email: str, password: str, first_name: str, last_name: str) -> Dict:
        """
        Create a user at the provider.

        Raises:
            IdentityProviderError: With the provider's validation messages on 4xx
        """
        response = await self._request("POST", "/users", json={
            "email_address": [email],
            "password": password,
            "first_name": first_name,
            "last_name": last_name,
        })
        if 400 <= response.status_code < 500:
            body = response.json() if response.content else {}
            errors = body.get("errors", []) if isinstance(body, dict) else []
            message = ", ".join(err.get("message", "") for err in errors) or "Invalid user data"
            logger.warning(f"Identity provider rejected user creation: status={response.status_code}")
            raise IdentityProviderError(message, status_code=response.status_code, errors=errors)
        response.raise_for_status()
        user = response.json()
        logger.info(f"User created at identity provider: external_id={user.get('id')}")
        return user


def primary_email(provider_user: Dict) -> str:
    """Pick the primary (or first) email address from a provider user payload."""
    addresses = provider_user.get("email_addresses") or []
    primary_id = provider_user.get("primary_email_address_id")
    for address in addresses:
        if address.get("id") == primary_id:
            return address.get("email_address", "")
    return addresses[0].get("email_address", "") if addresses else ""


def display_name(provider_user: Dict, email: str = "") -> str:
    name = f"{provider_user.get('first_name') or ''} {provider_user.get('last_name') or ''}".strip()
    return name or (email.split("@")[0] if email else "User")


_client: Optional[IdentityProviderClient] = None


def get_identity_provider_client() -> IdentityProviderClient:
    global _client
    if _client is None:
        _client = IdentityProviderClient()
    return _client
