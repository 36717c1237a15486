"""
Bearer JWT validation against the external identity provider, OR dev-mode bypass.
Controlled by FF_USE_AUTH flag.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from jose import jwt, JWTError

from .config import get_settings
from .errors import AuthenticationError
from .flags import get_flags

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedUser:
    user_id: str
    email: str = ""
    role: str = ""


# Dev-mode user — returned when FF_USE_AUTH=false
DEV_USER = AuthenticatedUser(
    user_id="dev-user",
    email="dev@local",
    role="authenticated",
)


class IdentityProviderClient:
    """Validates provider-issued JWTs. Caches JWKS keys."""

    def __init__(self):
        self._jwks: Optional[dict] = None
        self._jwks_fetched_at: float = 0
        self._jwks_ttl: int = 600  # 10 minutes

    async def _get_jwks(self, url: str) -> dict:
        now = time.time()
        if self._jwks and (now - self._jwks_fetched_at) < self._jwks_ttl:
            return self._jwks

        async with httpx.AsyncClient() as client:
            resp = await client.get(url, timeout=10)
            resp.raise_for_status()
            self._jwks = resp.json()
            self._jwks_fetched_at = now
            return self._jwks

    async def _signing_key(self, token: str, algorithm: str):
        settings = get_settings()

        # Symmetric tokens are checked against the shared project secret
        if algorithm.startswith("HS"):
            if not settings.auth_jwt_secret:
                raise JWTError("AUTH_JWT_SECRET is not configured")
            return settings.auth_jwt_secret

        if not settings.auth_jwks_url:
            raise JWTError("AUTH_JWKS_URL is not configured")

        jwks = await self._get_jwks(settings.auth_jwks_url)
        unverified_header = jwt.get_unverified_header(token)

        for key in jwks.get("keys", []):
            if key.get("kid") == unverified_header.get("kid"):
                return key

        raise JWTError("Unable to find matching key in JWKS")

    async def verify_token(self, token: str) -> AuthenticatedUser:
        settings = get_settings()
        algorithm = settings.auth_algorithm
        audience = settings.auth_audience or None
        issuer = settings.auth_issuer or None

        key = await self._signing_key(token, algorithm)

        payload = jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            audience=audience,
            issuer=issuer,
            options={"verify_aud": audience is not None},
        )

        subject = payload.get("sub", "")
        if not subject:
            raise JWTError("Token missing sub claim")

        return AuthenticatedUser(
            user_id=subject,
            email=payload.get("email", ""),
            role=payload.get("role", ""),
        )


# Singleton
_provider_client = IdentityProviderClient()


async def get_current_user(authorization: str = "") -> AuthenticatedUser:
    """
    Resolve the current user from the Authorization header.
    If FF_USE_AUTH is false, returns a dev user.
    """
    flags = get_flags()

    if not flags.use_auth:
        return DEV_USER

    if not authorization:
        raise AuthenticationError("Not authorized, no token or malformed token")

    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Not authorized, no token or malformed token")

    try:
        return await _provider_client.verify_token(token)
    except (JWTError, httpx.HTTPError) as e:
        logger.warning("Token verification failed: %s", e)
        raise AuthenticationError("Not authorized, token failed verification")
