"""
Peer and Interface Models

Persistent identities of remote peers and of the local tunnel interface.
Allowed-address lists are stored as a comma-delimited string and exposed
as Python lists.
"""

from typing import List, Optional
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from provisioner.db.base import utcnow
from provisioner.db.base_class import Base

ALLOWED_IPS_DELIMITER = ","


def split_allowed_ips(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(ALLOWED_IPS_DELIMITER) if item.strip()]


def join_allowed_ips(values: Optional[List[str]]) -> str:
    return ALLOWED_IPS_DELIMITER.join(values or [])


class Peer(Base):
    """
    WireGuard peer

    Name and public key are each unique across all peers. The private key
    is only held when the service generated the key pair.
    """
    __tablename__ = "peers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(255), nullable=False, unique=True, index=True)
    public_key = Column(String(64), nullable=False, unique=True, index=True)
    private_key = Column(String(64), nullable=True)
    allowed_ips_raw = Column("allowed_ips", Text, nullable=False, default="")
    endpoint = Column(String(255), nullable=True)
    preshared_key = Column(String(64), nullable=True)
    last_seen = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def allowed_ips(self) -> List[str]:
        return split_allowed_ips(self.allowed_ips_raw)

    @allowed_ips.setter
    def allowed_ips(self, values: List[str]) -> None:
        self.allowed_ips_raw = join_allowed_ips(values)

    @property
    def address(self) -> Optional[str]:
        """Tunnel address of the peer without prefix length"""
        ips = self.allowed_ips
        if not ips:
            return None
        return ips[0].split("/")[0]

    def __repr__(self) -> str:
        return f"<Peer(id={self.id}, name={self.name}, allowed_ips={self.allowed_ips_raw})>"


class WireGuardInterface(Base):
    """
    Local tunnel endpoint

    Attributes:
        name: Interface name (e.g., wg0)
        address: Address block served by the interface (CIDR)
    """
    __tablename__ = "interfaces"

    name = Column(String(32), primary_key=True)
    public_key = Column(String(64), nullable=False)
    private_key = Column(String(64), nullable=False)
    listen_port = Column(Integer, nullable=False, default=51820)
    address = Column(String(64), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<WireGuardInterface(name={self.name}, address={self.address})>"
