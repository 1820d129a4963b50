"""
Client for the hosted auth provider (Supabase GoTrue REST API).

The provider owns accounts, sessions, and one-time sign-in links. A database
trigger on the provider side materializes a profiles row for every account it
creates, so a freshly created account is not immediately visible to the store.

Payloads crossing this boundary are validated with pydantic models so callers
never have to guess at the provider's response shape.
"""

import os
import logging
from typing import Optional, Dict, Any
import httpx
from pydantic import BaseModel, Field, ValidationError, model_validator
from dotenv import load_dotenv

from volunteer_hub.services.errors import DependencyUnavailable, IdentityCreationFailed

load_dotenv()

logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL", "http://localhost:54321")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
AUTH_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("AUTH_PROVIDER_TIMEOUT_SECONDS", "10"))


class ProviderUser(BaseModel):
    """Account as reported by the provider."""

    id: str
    email: Optional[str] = None
    created_at: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class ProviderSession(BaseModel):
    """Session issued by the provider at sign-up or sign-in."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    user: ProviderUser


class SignUpResult(BaseModel):
    """Public sign-up answer: always a user, a session only when email confirmation is off."""

    user: ProviderUser
    session: Optional[ProviderSession] = None


class MagicLink(BaseModel):
    """One-time sign-in link. Response shape varies between provider versions."""

    action_link: str

    @model_validator(mode="before")
    @classmethod
    def _lift_nested_link(cls, data):
        if isinstance(data, dict) and "action_link" not in data:
            properties = data.get("properties") or {}
            if properties.get("action_link"):
                return {**data, "action_link": properties["action_link"]}
        return data


class AuthProviderClient:
    """Thin async wrapper over the provider's REST endpoints."""

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        service_role_key: str = SUPABASE_SERVICE_ROLE_KEY,
        anon_key: str = SUPABASE_ANON_KEY,
        timeout: float = AUTH_PROVIDER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_role_key = service_role_key
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport

    def _admin_headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }

    def _user_headers(self, access_token: str) -> Dict[str, str]:
        return {
            "apikey": self.anon_key or self.service_role_key,
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Auth provider timed out on {method} {path}: {e}")
            raise DependencyUnavailable("The sign-in service is not responding. Please try again.") from e
        except httpx.HTTPError as e:
            logger.error(f"Auth provider request failed on {method} {path}: {e}")
            raise DependencyUnavailable() from e

        if response.status_code >= 500:
            logger.error(
                f"Auth provider returned {response.status_code} on {method} {path}: {response.text}"
            )
            raise DependencyUnavailable()
        return response

    @staticmethod
    def _parse(model, payload, context: str):
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Unexpected auth provider payload for {context}: {e}")
            raise DependencyUnavailable() from e

    async def create_user(self, email: str, password: str, metadata: Dict[str, Any]) -> ProviderUser:
        """
        Create a confirmed account with the admin API.

        Raises:
            IdentityCreationFailed: if the provider rejects the account
        """
        response = await self._request(
            "POST",
            "/auth/v1/admin/users",
            headers=self._admin_headers(),
            json={
                "email": email,
                "password": password,
                "email_confirm": True,
                "user_metadata": metadata,
            },
        )
        if response.status_code >= 400:
            logger.warning(f"Auth provider rejected account for {email}: {response.text}")
            raise IdentityCreationFailed(details=response.text)
        return self._parse(ProviderUser, response.json(), "create_user")

    async def sign_up(
        self, email: str, password: str, metadata: Dict[str, Any], redirect_to: Optional[str] = None
    ) -> SignUpResult:
        """
        Self-service sign-up. Returns a session only when the provider does not
        require email confirmation first.

        Raises:
            IdentityCreationFailed: if the provider rejects the sign-up
        """
        params = {"redirect_to": redirect_to} if redirect_to else None
        response = await self._request(
            "POST",
            "/auth/v1/signup",
            headers=self._user_headers(self.anon_key),
            params=params,
            json={"email": email, "password": password, "data": metadata},
        )
        if response.status_code >= 400:
            logger.warning(f"Auth provider rejected sign-up for {email}: {response.text}")
            raise IdentityCreationFailed(details=response.text)

        payload = response.json()
        if payload.get("access_token"):
            session = self._parse(ProviderSession, payload, "sign_up")
            return SignUpResult(user=session.user, session=session)
        return SignUpResult(user=self._parse(ProviderUser, payload.get("user", payload), "sign_up"))

    async def get_user(self, user_id: str) -> Optional[ProviderUser]:
        """Look up an account by id with the admin API. None if it does not exist."""
        response = await self._request(
            "GET", f"/auth/v1/admin/users/{user_id}", headers=self._admin_headers()
        )
        if response.status_code in (400, 404):
            return None
        if response.status_code >= 400:
            logger.warning(f"Auth provider returned {response.status_code} for user {user_id}")
            return None
        return self._parse(ProviderUser, response.json(), "get_user")

    async def get_session_user(self, access_token: str) -> Optional[ProviderUser]:
        """Resolve an access token to its account. None if the token is invalid or expired."""
        response = await self._request("GET", "/auth/v1/user", headers=self._user_headers(access_token))
        if response.status_code >= 400:
            return None
        return self._parse(ProviderUser, response.json(), "get_session_user")

    async def generate_magic_link(self, email: str, redirect_to: str) -> MagicLink:
        """Generate a single-use sign-in link (valid for about an hour)."""
        response = await self._request(
            "POST",
            "/auth/v1/admin/generate_link",
            headers=self._admin_headers(),
            json={"type": "magiclink", "email": email, "redirect_to": redirect_to},
        )
        if response.status_code >= 400:
            logger.error(f"generate_link failed for {email}: {response.text}")
            raise DependencyUnavailable("Failed to generate sign-in link", details=response.text)
        return self._parse(MagicLink, response.json(), "generate_magic_link")

    async def sign_out(self, access_token: str, scope: str = "global") -> None:
        """Revoke the session. scope='local' only ends this session."""
        response = await self._request(
            "POST",
            "/auth/v1/logout",
            headers=self._user_headers(access_token),
            params={"scope": scope},
        )
        if response.status_code >= 400 and response.status_code != 401:
            raise DependencyUnavailable(f"Sign out failed with status {response.status_code}")


# Global singleton
_auth_provider = AuthProviderClient()


def get_auth_provider() -> AuthProviderClient:
    """Get the global auth provider client (FastAPI dependency)."""
    return _auth_provider
