"""Admin token verification.

Tokens are issued by the main platform; this service only verifies them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt

from tournament_admin.config import Settings
from tournament_admin.logging_config import get_logger

logger = get_logger(__name__)


class TokenError(Exception):
    """Token validation error with specific code."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class AdminPrincipal:
    """Authenticated administrator."""

    user_id: str
    role: str | None = None
    email: str | None = None


def decode_token(token: str, settings: Settings) -> dict[str, Any]:
    """Decode and verify a JWT token.

    Args:
        token: JWT token string
        settings: Settings carrying the signing key and algorithm

    Returns:
        Decoded payload

    Raises:
        TokenError: If the token is expired or invalid
    """
    if not token:
        raise TokenError("AUTH_INVALID_TOKEN", "Empty token")
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        logger.debug("token_expired")
        raise TokenError("AUTH_TOKEN_EXPIRED", "Token has expired") from None
    except jwt.JWTClaimsError as e:
        logger.debug("token_invalid_claims", error=str(e))
        raise TokenError("AUTH_INVALID_TOKEN", "Invalid token claims") from None
    except JWTError as e:
        logger.warning("token_decode_failed", error_type=type(e).__name__)
        raise TokenError("AUTH_INVALID_TOKEN", "Invalid token") from None


def is_admin_payload(payload: dict[str, Any]) -> bool:
    """Admin tokens carry ``role=admin`` or ``is_admin=true``."""
    return payload.get("role") == "admin" or payload.get("is_admin") is True


def verify_admin_token(token: str, settings: Settings) -> AdminPrincipal:
    """Verify a bearer token and require admin rights.

    Raises:
        TokenError: AUTH_* codes for invalid tokens, FORBIDDEN for non-admins
    """
    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    if not user_id:
        raise TokenError("AUTH_INVALID_TOKEN", "Token has no subject")
    if not is_admin_payload(payload):
        raise TokenError("FORBIDDEN", "Admin privileges required")
    return AdminPrincipal(
        user_id=str(user_id),
        role=payload.get("role"),
        email=payload.get("email"),
    )
