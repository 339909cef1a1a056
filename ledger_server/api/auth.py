"""
Token issuance and request authentication.

Tokens are HS256 JWTs (python-jose) carrying the username in ``sub`` and,
for the admin, ``role: "admin"``. The ``Authorization`` header may carry
the raw token or ``Bearer <token>``.

Invariants:
    - User routes accept only user tokens whose user still exists
    - Admin routes accept only tokens with the admin role
    - Every failure surfaces as AuthenticationError (401) or
      PermissionDeniedError (403), never as a jose exception
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from fastapi import Depends, Request
from jose import JWTError, jwt

from ..config import AuthConfig
from ..errors import AuthenticationError, PermissionDeniedError
from ..lifecycle.ids import Clock, utc_now

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""

    username: str
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class TokenService:
    """Issues and verifies access tokens."""

    def __init__(self, config: AuthConfig, clock: Clock | None = None) -> None:
        self.config = config
        self.clock = clock or utc_now

    def issue(self, username: str, role: str = ROLE_USER) -> str:
        now = self.clock()
        claims: dict[str, Any] = {
            "sub": username,
            "role": role,
            "iat": now,
            "exp": now + timedelta(hours=self.config.token_ttl_hours),
        }
        return jwt.encode(claims, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    def verify(self, token: str) -> Principal:
        """Decode a token.

        Raises:
            AuthenticationError: If the token is invalid or expired
        """
        try:
            claims = jwt.decode(
                token, self.config.jwt_secret, algorithms=[self.config.jwt_algorithm]
            )
        except JWTError as e:
            logger.debug(f"Rejected token: {e}")
            raise AuthenticationError("Invalid or expired token") from e

        username = claims.get("sub")
        if not isinstance(username, str) or not username:
            raise AuthenticationError("Invalid or expired token")
        return Principal(username=username, role=claims.get("role") or ROLE_USER)


def extract_token(authorization: str | None) -> str:
    """Pull the token out of an Authorization header value.

    Raises:
        AuthenticationError: If the header is missing or empty
    """
    if not authorization or not authorization.strip():
        raise AuthenticationError("Access token is missing")
    value = authorization.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == "bearer":
        value = rest.strip()
    if not value:
        raise AuthenticationError("Access token is missing")
    return value


# --- Dependencies ---


def get_token_service(request: Request) -> TokenService:
    """Get the token service from app state."""
    return request.app.state.tokens


def get_principal(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
) -> Principal:
    return tokens.verify(extract_token(request.headers.get("Authorization")))


async def get_current_user(
    request: Request,
    principal: Principal = Depends(get_principal),
) -> str:
    """Username of an authenticated, still-existing user."""
    if principal.is_admin:
        raise PermissionDeniedError("User token required")
    await request.app.state.services.accounts.require_user(principal.username)
    return principal.username


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise PermissionDeniedError("Admin privileges required")
    return principal
