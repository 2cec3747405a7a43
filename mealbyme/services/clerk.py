"""Clerk Backend API client (user lookup and metadata updates)."""

from functools import lru_cache
from typing import Optional

import httpx

from mealbyme.config import get_settings
from mealbyme.errors import ConfigurationError, UpstreamServiceError


class ClerkAdminService:
    """
    Privileged calls against the Clerk Backend API.

    Uses the secret key, so it only ever runs server-side.
    """

    def __init__(self, secret_key: str, api_url: str = "https://api.clerk.com/v1", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self._transport = transport  # Tests pass an httpx.MockTransport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers={"Authorization": f"Bearer {self.secret_key}"},
            timeout=15.0,
            transport=self._transport,
        )

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        """Id of the first user registered with email, or None."""
        try:
            async with self._client() as client:
                response = await client.get("/users", params={"email_address": email, "limit": 1})
                response.raise_for_status()
                users = response.json()
        except httpx.HTTPError as e:
            raise UpstreamServiceError("Failed to look up user", detail=str(e))

        if not users:
            return None
        return users[0].get("id")

    async def update_public_metadata(self, user_id: str, public_metadata: dict) -> None:
        """Merge public_metadata into the user's existing public metadata."""
        try:
            async with self._client() as client:
                response = await client.patch(
                    f"/users/{user_id}/metadata",
                    json={"public_metadata": public_metadata},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamServiceError("Failed to update user metadata", detail=str(e))

        print(f"✅ Updated Clerk metadata for {user_id}: {sorted(public_metadata)}")


@lru_cache
def get_clerk_admin() -> ClerkAdminService:
    settings = get_settings()
    if not settings.clerk_secret_key:
        print("❌ CLERK_SECRET_KEY is not set")
        raise ConfigurationError("CLERK_SECRET_KEY")
    return ClerkAdminService(settings.clerk_secret_key, settings.clerk_api_url)


def get_optional_clerk_admin() -> Optional[ClerkAdminService]:
    """Clerk admin client, or None when CLERK_SECRET_KEY is not configured."""
    if not get_settings().clerk_secret_key:
        return None
    return get_clerk_admin()
