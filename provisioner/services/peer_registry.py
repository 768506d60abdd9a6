"""
Peer Registry

Durable record store for peer and interface identities.

The provisioning service depends on the PeerRegistry capability only;
SQLPeerRegistry is the SQLAlchemy-backed implementation. Every operation
runs in its own session and commits atomically.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from provisioner.db.base import utcnow
from provisioner.models.peer import Peer, WireGuardInterface

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the record store fails"""
    pass


class DuplicateRecordError(StorageError):
    """Raised when a write violates a unique constraint"""
    pass


class PeerRegistry(ABC):
    """
    Abstract record store for peers and interfaces

    Implementations must provide atomic single-record writes and enforce
    uniqueness of peer name and public key.
    """

    @abstractmethod
    def save_interface(self, interface: WireGuardInterface) -> WireGuardInterface:
        pass

    @abstractmethod
    def get_interface(self, name: str) -> Optional[WireGuardInterface]:
        pass

    @abstractmethod
    def create_peer(self, peer: Peer) -> Peer:
        """
        Insert a new peer

        Raises:
            DuplicateRecordError: If name or public key already exist
        """
        pass

    @abstractmethod
    def update_peer(self, peer: Peer) -> Peer:
        pass

    @abstractmethod
    def get_peer(self, peer_id: str) -> Optional[Peer]:
        pass

    @abstractmethod
    def get_peer_by_name(self, name: str) -> Optional[Peer]:
        pass

    @abstractmethod
    def get_peer_by_public_key(self, public_key: str) -> Optional[Peer]:
        pass

    @abstractmethod
    def list_peers(self) -> List[Peer]:
        pass

    @abstractmethod
    def delete_peer(self, peer_id: str) -> bool:
        """Delete a peer; returns False when it did not exist"""
        pass

    @abstractmethod
    def update_peer_last_seen(self, peer_id: str, last_seen: datetime) -> bool:
        pass


class SQLPeerRegistry(PeerRegistry):
    """
    SQLAlchemy implementation of the peer registry

    Attributes:
        session_factory: sessionmaker bound to the database engine
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise DuplicateRecordError(f"Unique constraint violated: {e.orig}")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Registry operation failed: {e}")
            raise StorageError(f"Storage failure: {e}")
        finally:
            db.close()

    def save_interface(self, interface: WireGuardInterface) -> WireGuardInterface:
        with self._session() as db:
            merged = db.merge(interface)
            db.flush()
        logger.info(f"Saved interface {interface.name}")
        return merged

    def get_interface(self, name: str) -> Optional[WireGuardInterface]:
        with self._session() as db:
            return db.get(WireGuardInterface, name)

    def create_peer(self, peer: Peer) -> Peer:
        with self._session() as db:
            db.add(peer)
            db.flush()
        logger.info(f"Stored peer {peer.id} ({peer.name})")
        return peer

    def update_peer(self, peer: Peer) -> Peer:
        peer.updated_at = utcnow()
        with self._session() as db:
            merged = db.merge(peer)
            db.flush()
        return merged

    def get_peer(self, peer_id: str) -> Optional[Peer]:
        with self._session() as db:
            return db.get(Peer, str(peer_id))

    def get_peer_by_name(self, name: str) -> Optional[Peer]:
        with self._session() as db:
            return db.query(Peer).filter(Peer.name == name).first()

    def get_peer_by_public_key(self, public_key: str) -> Optional[Peer]:
        with self._session() as db:
            return db.query(Peer).filter(Peer.public_key == public_key).first()

    def list_peers(self) -> List[Peer]:
        with self._session() as db:
            return db.query(Peer).order_by(Peer.created_at).all()

    def delete_peer(self, peer_id: str) -> bool:
        with self._session() as db:
            peer = db.get(Peer, str(peer_id))
            if peer is None:
                return False
            db.delete(peer)
        logger.info(f"Deleted peer {peer_id}")
        return True

    def update_peer_last_seen(self, peer_id: str, last_seen: datetime) -> bool:
        with self._session() as db:
            peer = db.get(Peer, str(peer_id))
            if peer is None:
                return False
            peer.last_seen = last_seen
        return True
