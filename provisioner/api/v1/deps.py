"""
Shared API dependencies

Singleton provisioning service, bearer credential resolution and the
mapping from service errors to HTTP responses.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from provisioner.config import get_settings
from provisioner.db.base import create_session_factory, init_db
from provisioner.models.credential_claims import CredentialClaims
from provisioner.security.token_service import InvalidCredentialError
from provisioner.services.peer_registry import StorageError
from provisioner.services.wireguard_provisioning_service import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    ProvisioningError,
    ResourceExhaustedError,
    UnauthorizedError,
    WireGuardProvisioningService,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Dependency Injection
# ============================================================================

# Singleton instance of provisioning service
_provisioning_service: Optional[WireGuardProvisioningService] = None


def get_provisioning_service() -> WireGuardProvisioningService:
    """
    Get or create provisioning service instance

    The first call creates the tables, loads the interface and rebuilds the
    address pool.

    Returns:
        WireGuardProvisioningService instance
    """
    global _provisioning_service

    if _provisioning_service is None:
        settings = get_settings()
        engine, session_factory = create_session_factory(settings.database_url)
        init_db(engine)

        service = WireGuardProvisioningService.from_settings(settings, session_factory)
        service.initialize_interface()
        _provisioning_service = service

    return _provisioning_service


def set_provisioning_service(service: Optional[WireGuardProvisioningService]) -> None:
    """Install (or clear) the singleton service"""
    global _provisioning_service
    _provisioning_service = service


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> CredentialClaims:
    """Resolve the bearer access credential of the request"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return service.authenticate(credentials.credentials)
    except (InvalidCredentialError, ProvisioningError, StorageError) as e:
        raise to_http_exception(e)


def require_admin(
    claims: CredentialClaims = Depends(get_current_claims),
) -> CredentialClaims:
    """Require an administrative (user) credential"""
    if not claims.role.can_administer:
        logger.warning(f"Administrative request refused for {claims.role.value} {claims.sub}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrative credential required",
        )
    return claims


# ============================================================================
# Error mapping
# ============================================================================

def to_http_exception(error: Exception) -> HTTPException:
    """
    Map a service error to an HTTPException

    InvalidCredential -> 401, Unauthorized -> 403, Conflict -> 409,
    NotFound -> 404, InvalidRequest -> 400, ResourceExhausted -> 503,
    anything else -> 500.
    """
    if isinstance(error, InvalidCredentialError):
        logger.warning(f"Invalid credential: {error}")
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(error),
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(error, UnauthorizedError):
        logger.warning(f"Unauthorized: {error}")
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, ConflictError):
        logger.warning(f"Conflict: {error}")
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, InvalidRequestError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, ResourceExhaustedError):
        logger.error(f"IP pool exhausted: {error}")
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(error),
        )

    logger.error(f"Provisioning error: {error}", exc_info=error)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )
