"""API dependencies for authentication and service access."""

from typing import Annotated
import uuid

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tournament_admin.config import Settings, get_settings
from tournament_admin.logging_config import get_logger
from tournament_admin.settlement.orchestrator import SettlementOrchestrator
from tournament_admin.store.base import DocumentStore
from tournament_admin.utils.security import AdminPrincipal, TokenError, verify_admin_token

logger = get_logger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def get_trace_id(x_trace_id: Annotated[str | None, Header()] = None) -> str:
    """Get or generate trace ID for request tracking."""
    return x_trace_id or str(uuid.uuid4())


def get_app_settings() -> Settings:
    return get_settings()


def get_store(request: Request) -> DocumentStore:
    """Document store created during application startup."""
    return request.app.state.store


def get_orchestrator(request: Request) -> SettlementOrchestrator:
    """Settlement orchestrator created during application startup."""
    return request.app.state.orchestrator


def _auth_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": {},
            }
        },
        headers={"WWW-Authenticate": "Bearer"} if status_code == 401 else None,
    )


async def get_current_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> AdminPrincipal:
    """Require an admin bearer token.

    Raises:
        HTTPException: 401 if missing or invalid, 403 if not an admin
    """
    if not credentials:
        raise _auth_error(
            status.HTTP_401_UNAUTHORIZED, "AUTH_REQUIRED", "Authentication required"
        )

    try:
        return verify_admin_token(credentials.credentials, settings)
    except TokenError as e:
        if e.code == "FORBIDDEN":
            logger.warning("admin_access_denied", reason=e.message)
            raise _auth_error(status.HTTP_403_FORBIDDEN, e.code, e.message) from None
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, e.code, e.message) from None


CurrentAdmin = Annotated[AdminPrincipal, Depends(get_current_admin)]
Orchestrator = Annotated[SettlementOrchestrator, Depends(get_orchestrator)]
