"""
Credential Claims Schema

Defines the signed payload carried by bearer credentials and the closed
set of roles that decide which operations a credential may perform.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class Role(str, Enum):
    """
    Credential role

    ENROLLMENT credentials authorize exactly one enrollment transaction.
    CLIENT credentials are issued to enrolled peers.
    USER credentials are issued administratively and can manage peers.
    """
    ENROLLMENT = "enrollment"
    CLIENT = "client"
    USER = "user"

    @property
    def can_enroll(self) -> bool:
        return self is Role.ENROLLMENT

    @property
    def grants_access(self) -> bool:
        """Whether the role is a standing access credential"""
        return self in (Role.CLIENT, Role.USER)

    @property
    def can_administer(self) -> bool:
        return self is Role.USER


class CredentialClaims(BaseModel):
    """
    Claims of a bearer credential

    Attributes:
        sub: Subject identifier (peer id, or a placeholder for enrollment)
        name: Human-readable subject name
        role: Credential role
        peer_id: Associated peer identifier, if any
        jti: Unique token identifier
        iat: Issued-at, Unix timestamp
        nbf: Not-before, Unix timestamp
        exp: Expiry, Unix timestamp (the credential is invalid at exp)
        iss: Issuer
        aud: Audience
    """
    sub: str = Field(..., min_length=1, description="Subject identifier")
    name: str = Field(..., min_length=1, description="Subject name")
    role: Role = Field(..., description="Credential role")
    peer_id: Optional[str] = Field(None, description="Associated peer id")
    jti: str = Field(..., min_length=1, description="Unique token identifier")
    iat: int = Field(..., ge=0, description="Issued-at timestamp")
    nbf: int = Field(..., ge=0, description="Not-before timestamp")
    exp: int = Field(..., ge=0, description="Expiry timestamp")
    iss: str = Field(..., description="Issuer")
    aud: str = Field(..., description="Audience")

    @field_validator('aud', mode='before')
    @classmethod
    def flatten_audience(cls, v: Any) -> Any:
        """JWT allows a list audience; the service issues a single one"""
        if isinstance(v, (list, tuple)) and len(v) == 1:
            return v[0]
        return v

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)

    def to_payload(self) -> Dict[str, Any]:
        """JWT payload; peer_id is omitted when unset"""
        payload = self.model_dump(mode="json")
        if payload.get("peer_id") is None:
            payload.pop("peer_id", None)
        return payload
