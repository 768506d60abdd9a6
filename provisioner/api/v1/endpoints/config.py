"""
Client Configuration API Endpoints

Provides:
- GET /api/v1/config/{peer_id} - Client configuration (JSON and wg-quick text)
- GET /api/v1/pool/stats - Address pool statistics
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, status

from provisioner.api.v1.deps import (
    get_current_claims,
    get_provisioning_service,
    require_admin,
    to_http_exception,
)
from provisioner.models.credential_claims import CredentialClaims, Role
from provisioner.schemas.provisioning import ConfigResponse
from provisioner.services.peer_registry import StorageError
from provisioner.services.wireguard_provisioning_service import (
    ProvisioningError,
    WireGuardProvisioningService,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Configuration"])


@router.get(
    "/config/{peer_id}",
    response_model=ConfigResponse,
    status_code=status.HTTP_200_OK,
    summary="Get client configuration",
    description="""
    Client configuration for a peer, as structured data (`config`) and as
    a wg-quick file (`config_wg`).

    Allowed for administrative credentials and for the client credential
    issued to the peer itself.
    """,
)
def get_client_config(
    peer_id: str,
    claims: CredentialClaims = Depends(get_current_claims),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> ConfigResponse:
    is_self = claims.role == Role.CLIENT and claims.peer_id == peer_id
    if not (claims.role.can_administer or is_self):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to read this peer's configuration",
        )

    try:
        config = service.get_client_config(peer_id)
        if is_self:
            service.touch_peer(peer_id)
    except (ProvisioningError, StorageError) as e:
        raise to_http_exception(e)

    return ConfigResponse(
        config=config.model_dump(),
        config_wg=config.to_wireguard_config(),
    )


@router.get(
    "/pool/stats",
    response_model=Dict[str, int],
    status_code=status.HTTP_200_OK,
    summary="Get IP pool statistics",
)
def get_pool_stats(
    claims: CredentialClaims = Depends(require_admin),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> Dict[str, int]:
    stats = service.get_pool_stats()
    logger.debug(f"Pool stats: {stats}")
    return stats
