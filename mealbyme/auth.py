"""
Clerk JWT authentication for FastAPI.

Verifies JWT tokens issued by Clerk and extracts user information.
"""

import jwt
from jwt import PyJWKClient
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from functools import lru_cache
from typing import Optional
from pydantic import BaseModel

from mealbyme.config import get_settings
from mealbyme.errors import AuthError

# HTTP Bearer scheme for extracting tokens
security = HTTPBearer(auto_error=False)


class AuthUser(BaseModel):
    """Authenticated user from Clerk JWT."""
    id: str  # Clerk user ID (e.g., "user_2abc123...")
    email: Optional[str] = None
    stripe_customer_id: Optional[str] = None  # From public_metadata, set by checkout
    public_metadata: dict = {}


@lru_cache
def get_jwks_client() -> PyJWKClient:
    """Get or create JWKS client for Clerk."""
    settings = get_settings()
    # Clerk's JWKS endpoint
    jwks_url = f"https://{settings.clerk_frontend_api}/.well-known/jwks.json"
    return PyJWKClient(jwks_url)


def verify_clerk_token(token: str) -> AuthUser:
    """
    Verify a Clerk JWT token and return user info.

    Raises AuthError if token is invalid.
    """
    try:
        # Get the signing key from Clerk's JWKS
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)

        # Add 60 second leeway to handle clock skew between client and server
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            options={"verify_aud": False},  # Clerk doesn't always set audience
            leeway=60,
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Session expired. Please sign in again.")
    except jwt.PyJWTError as e:
        raise AuthError("Invalid authentication", detail=str(e))

    if not payload.get("sub"):
        raise AuthError("Invalid authentication", detail="Token has no subject")

    # public_metadata is included if you've configured your Clerk JWT template
    public_metadata = payload.get("public_metadata", {}) or {}

    return AuthUser(
        id=payload["sub"],
        email=payload.get("email"),
        stripe_customer_id=public_metadata.get("stripe_customer_id"),
        public_metadata=public_metadata,
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> AuthUser:
    """
    FastAPI dependency to get the current authenticated user.

    Usage:
        @app.get("/protected")
        async def protected_route(user: AuthUser = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    if credentials is None:
        raise AuthError("No authorization header")

    return verify_clerk_token(credentials.credentials)
