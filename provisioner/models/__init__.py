"""
Persistent models and credential schemas

Importing this package registers every table on the declarative base.
"""

from provisioner.models.peer import Peer, WireGuardInterface
from provisioner.models.token_revocation import ConsumedCredential, CredentialRevocation
from provisioner.models.enrollment import EnrollmentRecord, EnrollmentState
from provisioner.models.credential_claims import CredentialClaims, Role

__all__ = [
    "Peer",
    "WireGuardInterface",
    "ConsumedCredential",
    "CredentialRevocation",
    "EnrollmentRecord",
    "EnrollmentState",
    "CredentialClaims",
    "Role",
]
