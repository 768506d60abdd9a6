"""
WireGuard Peer Provisioning Service

Main service layer for peer enrollment and credential lifecycle.

Enrollment workflow:
1. Validate the enrollment credential and its role
2. Reject malformed keys and names or keys already registered
3. Consume the one-time credential
4. Settle key material (client key or generated key pair)
5. Allocate a unique address from the pool
6. Persist the peer
7. Issue a client access credential

Each step is written to the enrollment journal. A failure between
allocation and persistence releases the address; a failure after
persistence leaves the peer in place and the journal entry FAILED for
operator review.

Security considerations:
- Enrollment credentials are single use
- Refresh re-checks the peer and revokes the presented credential
- Access credentials lapse once their peer is deactivated or deleted
- Private keys never leave the service except in the peer's own config
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.orm import sessionmaker

from provisioner.config import Settings
from provisioner.db.base import utcnow
from provisioner.models.credential_claims import CredentialClaims, Role
from provisioner.models.enrollment import EnrollmentRecord, EnrollmentState
from provisioner.models.peer import Peer, WireGuardInterface
from provisioner.networking.wireguard_config import (
    ClientConfig,
    ClientInterface,
    ServerPeer,
)
from provisioner.networking.wireguard_keys import (
    WireGuardKeyError,
    generate_keypair,
    generate_preshared_key,
    validate_public_key,
)
from provisioner.security.token_service import InvalidCredentialError, TokenService
from provisioner.services.enrollment_journal import EnrollmentJournal
from provisioner.services.ip_pool_manager import IPPoolExhaustedError, IPPoolManager
from provisioner.services.peer_registry import (
    DuplicateRecordError,
    PeerRegistry,
    SQLPeerRegistry,
)
from provisioner.services.token_revocation_service import TokenRevocationService

logger = logging.getLogger(__name__)


# ============================================================================
# Custom Exceptions
# ============================================================================

class ProvisioningError(Exception):
    """Base exception for provisioning errors"""
    pass


class UnauthorizedError(ProvisioningError):
    """Raised when a valid credential has the wrong role for an operation"""
    pass


class ConflictError(ProvisioningError):
    """Raised when a peer name or public key is already registered"""
    pass


class NotFoundError(ProvisioningError):
    """Raised when a peer or interface does not exist"""
    pass


class ResourceExhaustedError(ProvisioningError):
    """Raised when the address pool has no free entries"""
    pass


class InvalidRequestError(ProvisioningError):
    """Raised when request input is malformed"""
    pass


@dataclass
class EnrollmentResult:
    """Outcome of a successful enrollment"""
    peer: Peer
    access_token: str

    @property
    def peer_id(self) -> str:
        return self.peer.id

    @property
    def allowed_ips(self) -> List[str]:
        return self.peer.allowed_ips


# ============================================================================
# Provisioning Service
# ============================================================================

class WireGuardProvisioningService:
    """
    WireGuard peer provisioning service

    Attributes:
        registry: Peer and interface record store
        token_service: Credential issuer
        revocations: Consumed and revoked credential ledger
        journal: Enrollment journal
        ip_pool: Address pool, owned by the caller and shared by reference
        interface_name: Name of the served interface
    """

    def __init__(
        self,
        registry: PeerRegistry,
        token_service: TokenService,
        revocations: TokenRevocationService,
        journal: EnrollmentJournal,
        ip_pool: IPPoolManager,
        interface_name: str = "wg0",
        listen_port: int = 51820,
        public_host: str = "vpn.example.com",
        client_dns: Optional[List[str]] = None,
        client_allowed_ips: Optional[List[str]] = None,
        access_token_ttl: int = 86400,
        enrollment_token_ttl: int = 3600,
        preshared_keys: bool = False
    ):
        self.registry = registry
        self.token_service = token_service
        self.revocations = revocations
        self.journal = journal
        self.ip_pool = ip_pool

        self.interface_name = interface_name
        self.listen_port = listen_port
        self.public_host = public_host
        self.client_dns = list(client_dns) if client_dns is not None else ["8.8.8.8", "8.8.4.4"]
        self.client_allowed_ips = (
            list(client_allowed_ips) if client_allowed_ips is not None else ["0.0.0.0/0"]
        )
        self.access_token_ttl = access_token_ttl
        self.enrollment_token_ttl = enrollment_token_ttl
        self.preshared_keys = preshared_keys

        logger.info(
            f"Initialized WireGuard provisioning service: "
            f"interface={interface_name}, network={ip_pool.network}"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: sessionmaker
    ) -> "WireGuardProvisioningService":
        """Wire the service and its collaborators from settings"""
        return cls(
            registry=SQLPeerRegistry(session_factory),
            token_service=TokenService(
                secret_key=settings.jwt_secret,
                issuer=settings.jwt_issuer,
                audience=settings.jwt_audience,
            ),
            revocations=TokenRevocationService(session_factory),
            journal=EnrollmentJournal(session_factory),
            ip_pool=IPPoolManager(network=settings.network),
            interface_name=settings.interface_name,
            listen_port=settings.listen_port,
            public_host=settings.public_host,
            client_dns=settings.client_dns,
            client_allowed_ips=settings.client_allowed_ips,
            access_token_ttl=settings.access_token_ttl_seconds,
            enrollment_token_ttl=settings.enrollment_token_ttl_seconds,
            preshared_keys=settings.preshared_keys,
        )

    # ------------------------------------------------------------------
    # Interface and pool state
    # ------------------------------------------------------------------

    @property
    def interface_address(self) -> str:
        """Address held by the interface itself (the block's network address)"""
        return str(self.ip_pool.network.network_address)

    def initialize_interface(self) -> WireGuardInterface:
        """
        Load or create the served interface and rebuild the address pool

        Idempotent: an existing interface keeps its keys.

        Returns:
            The interface record
        """
        interface = self.registry.get_interface(self.interface_name)

        if interface is None:
            private_key, public_key = generate_keypair()
            interface = self.registry.save_interface(WireGuardInterface(
                name=self.interface_name,
                public_key=public_key,
                private_key=private_key,
                listen_port=self.listen_port,
                address=str(self.ip_pool.network),
            ))
            logger.info(f"Created interface {self.interface_name}")
        else:
            if interface.address != str(self.ip_pool.network):
                logger.warning(
                    f"Interface {interface.name} serves {interface.address}, "
                    f"pool is configured for {self.ip_pool.network}"
                )
            logger.info(f"Loaded existing interface {interface.name}")

        self.rebuild_address_pool()
        return interface

    def get_interface(self) -> WireGuardInterface:
        interface = self.registry.get_interface(self.interface_name)
        if interface is None:
            raise NotFoundError(f"Interface {self.interface_name} is not initialized")
        return interface

    def rebuild_address_pool(self) -> int:
        """
        Replay persisted address assignments into the pool

        Every stored peer keeps its address whether active or not. Must run
        before enrollment requests are served.

        Returns:
            Number of peer addresses replayed
        """
        self.ip_pool.reset()
        self.ip_pool.reserve(self.interface_address)

        replayed = 0
        for peer in self.registry.list_peers():
            for prefix in peer.allowed_ips:
                try:
                    self.ip_pool.reserve(prefix)
                    replayed += 1
                except ValueError:
                    logger.warning(
                        f"Peer {peer.id} holds {prefix} outside pool {self.ip_pool.network}"
                    )

        logger.info(f"Rebuilt address pool: {replayed} peer addresses replayed")
        return replayed

    def get_pool_stats(self) -> Dict[str, int]:
        return self.ip_pool.get_pool_stats()

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def _host_prefix(self, address: str) -> str:
        ip = ipaddress.ip_address(address)
        return f"{address}/{ip.max_prefixlen}"

    def _check_name(self, name: str) -> str:
        if not name or not name.strip():
            raise InvalidRequestError("Peer name cannot be empty")
        name = name.strip()
        if self.registry.get_peer_by_name(name) is not None:
            raise ConflictError(f"Peer with name {name} already exists")
        return name

    def _check_public_key(self, public_key: Optional[str]) -> None:
        if public_key is None:
            return

        try:
            validate_public_key(public_key)
        except WireGuardKeyError as e:
            raise InvalidRequestError(f"Invalid public key: {e}")

        if self.registry.get_peer_by_public_key(public_key) is not None:
            raise ConflictError("Peer with this public key already exists")

    def _provision(
        self,
        record: EnrollmentRecord,
        name: str,
        public_key: Optional[str]
    ) -> Tuple[Peer, EnrollmentRecord]:
        """Run the KEYED -> ADDRESSED -> PERSISTED steps"""
        if public_key is None:
            private_key, public_key = generate_keypair()
        else:
            private_key = None
        record = self.journal.advance(record, EnrollmentState.KEYED)

        try:
            address = self.ip_pool.allocate()
        except IPPoolExhaustedError as e:
            raise ResourceExhaustedError(str(e)) from e

        # Address is held from here until the peer is persisted
        try:
            record = self.journal.advance(
                record, EnrollmentState.ADDRESSED, assigned_address=address
            )

            peer = Peer(
                id=str(uuid4()),
                name=name,
                public_key=public_key,
                private_key=private_key,
                preshared_key=generate_preshared_key() if self.preshared_keys else None,
                is_active=True,
            )
            peer.allowed_ips = [self._host_prefix(address)]

            self.registry.create_peer(peer)
        except DuplicateRecordError as e:
            self.ip_pool.release(address)
            raise ConflictError(f"Peer {name} conflicts with an existing peer") from e
        except Exception:
            self.ip_pool.release(address)
            raise

        record = self.journal.advance(record, EnrollmentState.PERSISTED, peer_id=peer.id)
        return peer, record

    def enroll(
        self,
        token: str,
        client_name: str,
        client_public_key: Optional[str] = None
    ) -> EnrollmentResult:
        """
        Enroll a new peer with a one-time enrollment credential

        Args:
            token: Enrollment credential
            client_name: Unique peer name
            client_public_key: Client's own public key; a key pair is
                generated when omitted

        Returns:
            EnrollmentResult with the peer and its client access credential

        Raises:
            InvalidCredentialError: Token invalid, expired or already used
            UnauthorizedError: Token role is not enrollment
            ConflictError: Name or public key already registered
            ResourceExhaustedError: Address pool exhausted
            StorageError: Record store failure
        """
        claims = self.token_service.validate(token)
        if not claims.role.can_enroll:
            logger.warning(
                f"Enrollment attempted with {claims.role.value} credential {claims.jti}"
            )
            raise UnauthorizedError("Credential is not an enrollment credential")

        record = self.journal.begin(client_name=client_name, token_jti=claims.jti)
        try:
            name = self._check_name(client_name)
            self._check_public_key(client_public_key)
            record = self.journal.advance(record, EnrollmentState.NAME_CHECKED)

            self.revocations.consume(claims)

            peer, record = self._provision(record, name, client_public_key)

            access_token = self.token_service.issue(
                subject_id=peer.id,
                name=peer.name,
                role=Role.CLIENT,
                peer_id=peer.id,
                ttl=self.access_token_ttl,
            )
            record = self.journal.advance(record, EnrollmentState.CREDENTIALED)
        except Exception as e:
            self.journal.fail(record, str(e))
            raise

        self.journal.advance(record, EnrollmentState.DONE)
        logger.info(
            f"Enrolled peer {peer.id} ({peer.name}) with {peer.allowed_ips}"
        )
        return EnrollmentResult(peer=peer, access_token=access_token)

    def add_user(self, name: str) -> Peer:
        """
        Administratively provision a peer (no enrollment credential)

        Always generates the key pair.

        Args:
            name: Unique peer name

        Returns:
            The stored peer

        Raises:
            ConflictError: Name already registered
            ResourceExhaustedError: Address pool exhausted
        """
        record = self.journal.begin(client_name=name)
        try:
            checked_name = self._check_name(name)
            record = self.journal.advance(record, EnrollmentState.NAME_CHECKED)
            peer, record = self._provision(record, checked_name, None)
        except Exception as e:
            self.journal.fail(record, str(e))
            raise

        self.journal.advance(record, EnrollmentState.DONE)
        logger.info(f"User {peer.name} added with IP {peer.address}")
        return peer

    def create_peer(self, name: str) -> Peer:
        return self.add_user(name)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def issue_token(self, name: str) -> str:
        """
        Issue a user access credential for an existing peer

        Raises:
            NotFoundError: Unknown peer name
            UnauthorizedError: Peer is deactivated
        """
        peer = self.registry.get_peer_by_name(name)
        if peer is None:
            raise NotFoundError(f"Peer {name} not found")
        if not peer.is_active:
            raise UnauthorizedError(f"Peer {name} is not active")

        return self.token_service.issue(
            subject_id=peer.id,
            name=peer.name,
            role=Role.USER,
            peer_id=peer.id,
            ttl=self.access_token_ttl,
        )

    def issue_enrollment_token(self, name: str, ttl: Optional[int] = None) -> str:
        """
        Issue a one-time enrollment credential for a future peer name

        Raises:
            InvalidRequestError: Empty name
            ConflictError: Name already registered
        """
        name = self._check_name(name)
        return self.token_service.issue_enrollment(
            name=name,
            ttl=ttl or self.enrollment_token_ttl,
        )

    def authenticate(self, token: str) -> CredentialClaims:
        """
        Validate a bearer access credential

        A credential bound to a peer is only honoured while that peer
        exists and is active.

        Raises:
            InvalidCredentialError: Invalid, expired or revoked credential,
                or its peer was deleted
            UnauthorizedError: Not an access credential, or its peer is
                deactivated
        """
        claims = self.token_service.validate(token)
        if self.revocations.is_revoked(claims.jti):
            raise InvalidCredentialError(f"Token {claims.jti} has been revoked")
        if not claims.role.grants_access:
            raise UnauthorizedError(
                f"{claims.role.value} credentials do not grant API access"
            )

        if claims.peer_id:
            peer = self.registry.get_peer(claims.peer_id)
            if peer is None:
                logger.warning(f"Credential {claims.jti} presented for deleted peer {claims.peer_id}")
                raise InvalidCredentialError(f"Peer {claims.peer_id} no longer exists")
            if not peer.is_active:
                raise UnauthorizedError(f"Peer {claims.peer_id} is not active")
        return claims

    def refresh_access(self, claims: CredentialClaims) -> str:
        """
        Re-issue an access credential for validated claims

        The associated peer must still exist and be active. The presented
        credential is revoked and linked to its successor.

        Args:
            claims: Validated claims of the presented credential

        Returns:
            New access credential

        Raises:
            UnauthorizedError: Wrong role or deactivated peer
            NotFoundError: Associated peer no longer exists
            InvalidCredentialError: Presented credential already revoked or
                rotated by a concurrent refresh
        """
        if not claims.role.grants_access:
            raise UnauthorizedError(
                f"{claims.role.value} credentials cannot be refreshed"
            )
        if self.revocations.is_revoked(claims.jti):
            raise InvalidCredentialError(f"Token {claims.jti} has been revoked")

        if claims.peer_id:
            peer = self.registry.get_peer(claims.peer_id)
            if peer is None:
                raise NotFoundError(f"Peer {claims.peer_id} no longer exists")
            if not peer.is_active:
                raise UnauthorizedError(f"Peer {claims.peer_id} is not active")

        # Revoke before minting so only one successor exists per jti
        self.revocations.claim_rotation(claims.jti, claims.exp)

        new_token = self.token_service.reissue(claims, self.access_token_ttl)
        self.revocations.link_successor(
            claims.jti, self.token_service.peek_claims(new_token)["jti"]
        )
        return new_token

    # ------------------------------------------------------------------
    # Peer management
    # ------------------------------------------------------------------

    def list_peers(self) -> List[Peer]:
        return self.registry.list_peers()

    def get_peer(self, peer_id: str) -> Peer:
        peer = self.registry.get_peer(peer_id)
        if peer is None:
            raise NotFoundError(f"Peer {peer_id} not found")
        return peer

    def update_peer(
        self,
        peer_id: str,
        name: Optional[str] = None,
        is_active: Optional[bool] = None,
        endpoint: Optional[str] = None
    ) -> Peer:
        """
        Update mutable peer fields

        Raises:
            NotFoundError: Unknown peer
            ConflictError: New name already taken
        """
        peer = self.get_peer(peer_id)

        if name is not None:
            if not name.strip():
                raise InvalidRequestError("Peer name cannot be empty")
            peer.name = name.strip()
        if is_active is not None:
            peer.is_active = is_active
        if endpoint is not None:
            peer.endpoint = endpoint or None

        try:
            peer = self.registry.update_peer(peer)
        except DuplicateRecordError as e:
            raise ConflictError(f"Peer with name {name} already exists") from e

        logger.info(f"Updated peer {peer_id}")
        return peer

    def delete_peer(self, peer_id: str) -> None:
        """
        Remove a peer and release its address

        Raises:
            NotFoundError: Unknown peer
        """
        peer = self.get_peer(peer_id)
        if not self.registry.delete_peer(peer.id):
            raise NotFoundError(f"Peer {peer_id} not found")

        for prefix in peer.allowed_ips:
            try:
                self.ip_pool.release(prefix)
            except ValueError:
                logger.warning(f"Address {prefix} of peer {peer_id} is outside the pool")

        logger.info(f"Deleted peer {peer_id} ({peer.name})")

    def touch_peer(self, peer_id: str) -> None:
        """Record contact from a peer"""
        self.registry.update_peer_last_seen(peer_id, utcnow())

    def get_client_config(self, peer_id: str) -> ClientConfig:
        """
        Resolve the client-facing configuration of a peer

        Raises:
            NotFoundError: Unknown peer or uninitialized interface
        """
        peer = self.get_peer(peer_id)
        interface = self.get_interface()

        return ClientConfig(
            interface=ClientInterface(
                private_key=peer.private_key or "",
                address=peer.allowed_ips,
                dns=self.client_dns,
            ),
            peer=ServerPeer(
                public_key=interface.public_key,
                endpoint=f"{self.public_host}:{interface.listen_port}",
                allowed_ips=self.client_allowed_ips,
                preshared_key=peer.preshared_key,
            ),
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile_enrollments(self) -> List[EnrollmentRecord]:
        """
        Close enrollment records left open by an interrupted process

        Run at startup, before requests are served: any open record then
        belongs to a transaction that will never finish. Addresses of
        unpersisted peers are already free after rebuild_address_pool();
        peers persisted without a credential are kept and reported.

        Returns:
            The records that were closed
        """
        closed = []
        for record in self.journal.list_incomplete():
            if record.peer_id and self.registry.get_peer(record.peer_id) is not None:
                logger.warning(
                    f"Enrollment {record.id} for {record.client_name} stopped after "
                    f"persisting peer {record.peer_id}; peer kept for operator review"
                )
                reason = f"interrupted; orphaned peer {record.peer_id}"
            else:
                reason = "interrupted before the peer was persisted"
                if record.assigned_address:
                    reason += f"; address {record.assigned_address} returned to pool"

            closed.append(self.journal.fail(record, reason))

        if closed:
            logger.info(f"Reconciled {len(closed)} interrupted enrollments")
        return closed
