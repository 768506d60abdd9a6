"""
Peer Management REST API

CRUD over registered peers. Every endpoint requires an administrative
(user) credential.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, status

from provisioner.api.v1.deps import (
    get_provisioning_service,
    require_admin,
    to_http_exception,
)
from provisioner.models.credential_claims import CredentialClaims
from provisioner.schemas.provisioning import (
    PeerCreateRequest,
    PeerResponse,
    PeerUpdateRequest,
)
from provisioner.services.peer_registry import StorageError
from provisioner.services.wireguard_provisioning_service import (
    ProvisioningError,
    WireGuardProvisioningService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/peers", tags=["Peers"])


@router.get(
    "",
    response_model=List[PeerResponse],
    status_code=status.HTTP_200_OK,
    summary="List peers",
)
def list_peers(
    claims: CredentialClaims = Depends(require_admin),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> List[PeerResponse]:
    try:
        peers = service.list_peers()
    except StorageError as e:
        raise to_http_exception(e)

    logger.info(f"Listed {len(peers)} peers")
    return [PeerResponse.from_peer(p) for p in peers]


@router.get(
    "/{peer_id}",
    response_model=PeerResponse,
    status_code=status.HTTP_200_OK,
    summary="Get peer detail",
)
def get_peer(
    peer_id: str,
    claims: CredentialClaims = Depends(require_admin),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> PeerResponse:
    try:
        return PeerResponse.from_peer(service.get_peer(peer_id))
    except (ProvisioningError, StorageError) as e:
        raise to_http_exception(e)


@router.post(
    "",
    response_model=PeerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create peer",
)
def create_peer(
    request: PeerCreateRequest,
    claims: CredentialClaims = Depends(require_admin),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> PeerResponse:
    try:
        peer = service.create_peer(request.name)
    except (ProvisioningError, StorageError) as e:
        raise to_http_exception(e)

    logger.info(f"Peer {peer.name} created by {claims.name}")
    return PeerResponse.from_peer(peer)


@router.put(
    "/{peer_id}",
    response_model=PeerResponse,
    status_code=status.HTTP_200_OK,
    summary="Update peer",
)
def update_peer(
    peer_id: str,
    request: PeerUpdateRequest,
    claims: CredentialClaims = Depends(require_admin),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> PeerResponse:
    try:
        peer = service.update_peer(
            peer_id,
            name=request.name,
            is_active=request.is_active,
            endpoint=request.endpoint,
        )
    except (ProvisioningError, StorageError) as e:
        raise to_http_exception(e)

    return PeerResponse.from_peer(peer)


@router.delete(
    "/{peer_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete peer",
    description="""
    Remove a peer and return its address to the pool.
    """,
)
def delete_peer(
    peer_id: str,
    claims: CredentialClaims = Depends(require_admin),
    service: WireGuardProvisioningService = Depends(get_provisioning_service),
) -> Dict[str, str]:
    try:
        service.delete_peer(peer_id)
    except (ProvisioningError, StorageError) as e:
        raise to_http_exception(e)

    return {
        "status": "success",
        "message": f"Peer {peer_id} deleted successfully"
    }
