"""
Provisioning services

Address pool, peer registry, credential ledger, enrollment journal and the
provisioning service that composes them.
"""

from provisioner.services.ip_pool_manager import IPPoolManager, IPPoolExhaustedError
from provisioner.services.peer_registry import (
    PeerRegistry,
    SQLPeerRegistry,
    StorageError,
    DuplicateRecordError,
)
from provisioner.services.token_revocation_service import (
    TokenRevocationService,
    CredentialReplayError,
)
from provisioner.services.enrollment_journal import EnrollmentJournal
from provisioner.services.wireguard_provisioning_service import (
    WireGuardProvisioningService,
    EnrollmentResult,
    ProvisioningError,
    UnauthorizedError,
    ConflictError,
    NotFoundError,
    ResourceExhaustedError,
    InvalidRequestError,
)

__all__ = [
    "IPPoolManager",
    "IPPoolExhaustedError",
    "PeerRegistry",
    "SQLPeerRegistry",
    "StorageError",
    "DuplicateRecordError",
    "TokenRevocationService",
    "CredentialReplayError",
    "EnrollmentJournal",
    "WireGuardProvisioningService",
    "EnrollmentResult",
    "ProvisioningError",
    "UnauthorizedError",
    "ConflictError",
    "NotFoundError",
    "ResourceExhaustedError",
    "InvalidRequestError",
]
