"""
Enrollment API Endpoints

Provides:
- POST /api/v1/enroll - Enroll a new peer with a one-time credential
- POST /api/v1/refresh-token - Exchange an access credential for a new one
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from provisioner.api.v1.deps import (
    get_current_claims,
    get_provisioning_service,
    to_http_exception,
)
from provisioner.models.credential_claims import CredentialClaims
from provisioner.schemas.provisioning import EnrollRequest, EnrollResponse, TokenResponse
from provisioner.security.token_service import InvalidCredentialError
from provisioner.services.peer_registry import StorageError
from provisioner.services.wireguard_provisioning_service import (
    ConflictError,
    ProvisioningError,
    UnauthorizedError,
    WireGuardProvisioningService,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Enrollment"])


@router.post(
    "/enroll",
    response_model=EnrollResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll new WireGuard peer",
    description="""
    Enroll a new peer with a one-time enrollment credential.

    **Errors:**
    - 400: Empty name or malformed public key
    - 401: Invalid, expired, already used or non-enrollment credential
    - 409: Name or public key already registered
    - 503: Address pool exhausted
    """,
)
def enroll_peer(
    request: EnrollRequest,
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> EnrollResponse:
    try:
        logger.info(f"Enrollment request received: client_name={request.client_name}")

        result = service.enroll(
            token=request.token,
            client_name=request.client_name,
            client_public_key=request.public_key,
        )

        return EnrollResponse(
            peer_id=result.peer_id,
            access_token=result.access_token,
            allowed_ips=result.allowed_ips,
            address=result.peer.address,
        )

    except ConflictError as e:
        logger.warning(f"Duplicate enrollment attempt: {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    except UnauthorizedError as e:
        logger.warning(f"Enrollment refused: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    except (InvalidCredentialError, ProvisioningError, StorageError) as e:
        raise to_http_exception(e)

    except Exception as e:
        logger.error(f"Unexpected error during enrollment: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during enrollment",
        )


@router.post(
    "/refresh-token",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Refresh access credential",
)
def refresh_token(
    claims: CredentialClaims = Depends(get_current_claims),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> TokenResponse:
    try:
        return TokenResponse(access_token=service.refresh_access(claims))
    except (InvalidCredentialError, ProvisioningError, StorageError) as e:
        raise to_http_exception(e)
