"""
Credential Ledger Models

Consumed enrollment credentials and revoked access credentials, both keyed
by the credential's unique token id (jti).
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Index

from provisioner.db.base import utcnow
from provisioner.db.base_class import Base


class ConsumedCredential(Base):
    """
    One-time credential that has been used

    Inserting a row is the atomic "mark used" step; a primary key
    collision means the credential was replayed.
    """
    __tablename__ = "consumed_credentials"

    jti = Column(String(64), primary_key=True, nullable=False)
    subject = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    consumed_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<ConsumedCredential(jti={self.jti}, name={self.name})>"


class CredentialRevocation(Base):
    """
    Access credential withdrawn before its natural expiry

    Attributes:
        jti: Token id of the withdrawn credential
        revoked_at: When it was withdrawn
        expires_at: When it would have expired anyway
        reason: rotation or manual
        replaced_by_jti: Successor credential when rotated
    """
    __tablename__ = "credential_revocations"

    jti = Column(String(64), primary_key=True, nullable=False)
    revoked_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    reason = Column(String(50), nullable=False)
    replaced_by_jti = Column(String(64), nullable=True)

    __table_args__ = (
        Index('ix_credential_revocation_cleanup', 'expires_at', 'revoked_at'),
    )

    def __repr__(self) -> str:
        return f"<CredentialRevocation(jti={self.jti}, reason={self.reason}, revoked_at={self.revoked_at})>"

    @classmethod
    def create(
        cls,
        jti: str,
        expires_at: datetime,
        reason: str = "rotation",
        replaced_by_jti: str = None
    ) -> "CredentialRevocation":
        return cls(
            jti=jti,
            revoked_at=utcnow(),
            expires_at=expires_at,
            reason=reason,
            replaced_by_jti=replaced_by_jti
        )
