"""
Token Revocation Service

Persistent credential ledger: one-time consumption of enrollment
credentials and the revocation list for rotated or withdrawn access
credentials. Both are keyed by the credential's jti.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from provisioner.db.base import utcnow
from provisioner.models.credential_claims import CredentialClaims
from provisioner.models.token_revocation import ConsumedCredential, CredentialRevocation
from provisioner.security.token_service import InvalidCredentialError
from provisioner.services.peer_registry import StorageError

logger = logging.getLogger(__name__)


class CredentialReplayError(InvalidCredentialError):
    """Raised when a one-time credential is presented a second time"""
    pass


def _naive_utc(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


class TokenRevocationService:
    """
    Service for credential consumption and revocation tracking

    Attributes:
        session_factory: sessionmaker bound to the database engine
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def consume(self, claims: CredentialClaims) -> None:
        """
        Mark a one-time credential as used

        The insert is atomic, so of two concurrent consumers of the same
        jti exactly one succeeds.

        Args:
            claims: Validated claims of the credential

        Raises:
            CredentialReplayError: If the credential was already consumed
            StorageError: If the ledger cannot be written
        """
        db = self.session_factory()
        try:
            db.add(ConsumedCredential(
                jti=claims.jti,
                subject=claims.sub,
                name=claims.name,
                consumed_at=utcnow(),
                expires_at=_naive_utc(claims.exp),
            ))
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Replay of one-time credential {claims.jti} rejected")
            raise CredentialReplayError(f"Credential {claims.jti} has already been used")
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to record credential use: {e}")
        finally:
            db.close()

        logger.info(f"Consumed one-time credential {claims.jti} for {claims.name}")

    def is_consumed(self, jti: str) -> bool:
        db = self.session_factory()
        try:
            return db.get(ConsumedCredential, jti) is not None
        finally:
            db.close()

    def revoke(
        self,
        jti: str,
        expires_at: int,
        reason: str = "manual",
        replaced_by_jti: Optional[str] = None
    ) -> None:
        """
        Revoke a token by adding to revocation list

        Revoking an already revoked token keeps the first entry.

        Args:
            jti: Token ID to revoke
            expires_at: Original token expiration (Unix timestamp)
            reason: Revocation reason (rotation or manual)
            replaced_by_jti: New token ID if this was rotated
        """
        db = self.session_factory()
        try:
            if db.get(CredentialRevocation, jti) is not None:
                logger.debug(f"Token {jti} already revoked")
                return
            db.add(CredentialRevocation.create(
                jti=jti,
                expires_at=_naive_utc(expires_at),
                reason=reason,
                replaced_by_jti=replaced_by_jti
            ))
            db.commit()
        except IntegrityError:
            db.rollback()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to revoke credential: {e}")
        finally:
            db.close()

        logger.info(f"Revoked token {jti}, reason: {reason}")

    def claim_rotation(self, jti: str, expires_at: int) -> None:
        """
        Revoke a credential for rotation, at most once

        Unlike revoke(), an existing entry is an error: of two concurrent
        rotations of the same jti exactly one succeeds.

        Raises:
            CredentialReplayError: If the credential is already revoked
            StorageError: If the ledger cannot be written
        """
        db = self.session_factory()
        try:
            db.add(CredentialRevocation.create(
                jti=jti,
                expires_at=_naive_utc(expires_at),
                reason="rotation",
            ))
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Repeated rotation of credential {jti} rejected")
            raise CredentialReplayError(f"Token {jti} has already been rotated")
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to revoke credential: {e}")
        finally:
            db.close()

    def link_successor(self, jti: str, replaced_by_jti: str) -> None:
        """Record the credential that replaced a rotated one"""
        db = self.session_factory()
        try:
            entry = db.get(CredentialRevocation, jti)
            if entry is None:
                return
            entry.replaced_by_jti = replaced_by_jti
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to link rotated credential: {e}")
        finally:
            db.close()

        logger.info(f"Rotated token {jti} -> {replaced_by_jti}")

    def is_revoked(self, jti: str) -> bool:
        """
        Check if a token is revoked

        Args:
            jti: Token ID to check

        Returns:
            True if token is revoked
        """
        db = self.session_factory()
        try:
            return db.get(CredentialRevocation, jti) is not None
        finally:
            db.close()

    def get_revocation(self, jti: str) -> Optional[CredentialRevocation]:
        db = self.session_factory()
        try:
            return db.get(CredentialRevocation, jti)
        finally:
            db.close()

    def cleanup_expired(self, retention_days: int = 30) -> int:
        """
        Delete ledger entries whose credentials expired before the
        retention window

        Args:
            retention_days: Days to keep after expiration (default 30)

        Returns:
            Number of entries deleted
        """
        threshold = utcnow() - timedelta(days=retention_days)
        db = self.session_factory()
        try:
            revoked = db.query(CredentialRevocation).filter(
                CredentialRevocation.expires_at < threshold
            ).delete(synchronize_session=False)
            consumed = db.query(ConsumedCredential).filter(
                ConsumedCredential.expires_at < threshold
            ).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to clean up credential ledger: {e}")
        finally:
            db.close()

        count = revoked + consumed
        if count:
            logger.info(f"Cleaned up {count} expired ledger entries")
        return count
