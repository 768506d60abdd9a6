"""
Provisioning API Schemas

Pydantic models for enrollment, peer management and configuration
requests and responses.

Security considerations:
- Client public keys validated for format before reaching the service
- Private keys are never part of a peer response
"""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from provisioner.models.peer import Peer

_PUBLIC_KEY_PATTERN = re.compile(r'^[A-Za-z0-9+/]{43}=$')


def _check_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("name cannot be empty")
    return v


class EnrollRequest(BaseModel):
    """Request to enroll a new peer with a one-time credential"""
    model_config = ConfigDict(extra='forbid')

    token: str = Field(..., min_length=1, description="Enrollment credential")
    client_name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Unique peer name"
    )
    public_key: Optional[str] = Field(
        None,
        description="Client WireGuard public key (base64); generated when omitted"
    )

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, v):
        return _check_name(v)

    @field_validator('public_key')
    @classmethod
    def validate_public_key(cls, v):
        """WireGuard keys are 44 characters of base64"""
        if v is not None and not _PUBLIC_KEY_PATTERN.match(v):
            raise ValueError("public_key must be a valid base64-encoded key")
        return v


class EnrollResponse(BaseModel):
    peer_id: str
    access_token: str
    allowed_ips: List[str]
    address: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PeerCreateRequest(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: str = Field(..., min_length=1, max_length=255)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)


class PeerUpdateRequest(BaseModel):
    """Partial peer update; omitted fields are left unchanged"""
    model_config = ConfigDict(extra='forbid')

    name: Optional[str] = Field(None, max_length=255)
    is_active: Optional[bool] = None
    endpoint: Optional[str] = Field(None, max_length=255)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)


class PeerResponse(BaseModel):
    """Public view of a peer"""

    id: str
    name: str
    public_key: str
    allowed_ips: List[str]
    address: Optional[str] = None
    endpoint: Optional[str] = None
    is_active: bool
    last_seen: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_peer(cls, peer: Peer) -> "PeerResponse":
        return cls(
            id=peer.id,
            name=peer.name,
            public_key=peer.public_key,
            allowed_ips=peer.allowed_ips,
            address=peer.address,
            endpoint=peer.endpoint,
            is_active=bool(peer.is_active),
            last_seen=peer.last_seen,
            created_at=peer.created_at,
            updated_at=peer.updated_at,
        )


class ConfigResponse(BaseModel):
    """Client configuration as structured data and as wg-quick text"""

    config: dict
    config_wg: str
