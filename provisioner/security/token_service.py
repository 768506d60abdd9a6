"""
Token Service

JWT issuance, validation and refresh for bearer credentials.
Credentials are signed with a shared secret (HS256 only); any process
holding the same secret can validate tokens issued by another.

Temporal bounds are checked here rather than inside PyJWT so that the
clock can be injected and the expiry boundary is exact: a credential is
invalid at its `exp` second.
"""

import logging
import time
import uuid
from datetime import timedelta
from typing import Callable, Optional, Union

import jwt
from pydantic import ValidationError

from provisioner.models.credential_claims import CredentialClaims, Role

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

Duration = Union[int, float, timedelta]


class InvalidCredentialError(Exception):
    """Raised when token signature, format or validity window is invalid"""
    pass


class CredentialExpiredError(InvalidCredentialError):
    """Raised when token has expired"""
    pass


def _seconds(ttl: Duration) -> int:
    if isinstance(ttl, timedelta):
        ttl = ttl.total_seconds()
    seconds = int(ttl)
    if seconds <= 0:
        raise ValueError(f"ttl must be positive, got {ttl}")
    return seconds


class TokenService:
    """
    JWT credential issuer and validator

    Attributes:
        secret_key: Shared HMAC secret
        issuer: Value of the `iss` claim
        audience: Value of the `aud` claim
        leeway: Clock skew tolerance in seconds
    """

    def __init__(
        self,
        secret_key: Union[str, bytes],
        issuer: str = "wg-provisioner",
        audience: str = "wg-provisioner",
        leeway: int = 0,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize token service

        Args:
            secret_key: Shared secret used to sign and verify tokens
            issuer: Issuer claim value
            audience: Audience claim value
            leeway: Seconds of tolerated clock skew
            clock: Time source returning Unix seconds (default: time.time)
        """
        if not secret_key:
            raise ValueError("secret_key must not be empty")

        self.secret_key = secret_key
        self.issuer = issuer
        self.audience = audience
        self.leeway = leeway
        self._clock = clock or time.time

    def _now(self) -> int:
        return int(self._clock())

    def _encode(self, claims: CredentialClaims) -> str:
        return jwt.encode(claims.to_payload(), self.secret_key, algorithm=ALGORITHM)

    def _build_claims(
        self,
        subject_id: str,
        name: str,
        role: Role,
        peer_id: Optional[str],
        issued_at: int,
        expires_at: int
    ) -> CredentialClaims:
        return CredentialClaims(
            sub=str(subject_id),
            name=name,
            role=Role(role),
            peer_id=str(peer_id) if peer_id else None,
            jti=str(uuid.uuid4()),
            iat=issued_at,
            nbf=issued_at,
            exp=expires_at,
            iss=self.issuer,
            aud=self.audience,
        )

    def issue(
        self,
        subject_id: str,
        name: str,
        role: Role,
        peer_id: Optional[str] = None,
        ttl: Duration = 3600
    ) -> str:
        """
        Issue a signed credential

        Args:
            subject_id: Subject identifier
            name: Subject name
            role: Credential role
            peer_id: Associated peer id (optional)
            ttl: Validity window (seconds or timedelta)

        Returns:
            Signed JWT string
        """
        now = self._now()
        claims = self._build_claims(
            subject_id, name, role, peer_id, now, now + _seconds(ttl)
        )
        logger.info(
            f"Issued {claims.role.value} credential {claims.jti} for {name}"
        )
        return self._encode(claims)

    def issue_enrollment(self, name: str, ttl: Duration = 3600) -> str:
        """
        Issue an enrollment credential

        No peer exists yet, so the subject is a fresh placeholder id.

        Args:
            name: Name the enrolling client is expected to use
            ttl: Validity window

        Returns:
            Signed JWT string
        """
        return self.issue(
            subject_id=str(uuid.uuid4()),
            name=name,
            role=Role.ENROLLMENT,
            peer_id=None,
            ttl=ttl
        )

    def validate(self, token: str) -> CredentialClaims:
        """
        Decode and verify a credential

        Args:
            token: JWT string

        Returns:
            CredentialClaims

        Raises:
            CredentialExpiredError: If the token is at or past its expiry
            InvalidCredentialError: On algorithm, signature, claim or
                not-before failures
        """
        if not token or not isinstance(token, str):
            raise InvalidCredentialError("Token is missing")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise InvalidCredentialError(f"Invalid token format: {str(e)}")

        if header.get("alg") != ALGORITHM:
            raise InvalidCredentialError(
                f"Unexpected signing algorithm: {header.get('alg')}"
            )

        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                    "require": ["sub", "jti", "iat", "nbf", "exp"],
                }
            )
        except jwt.InvalidTokenError as e:
            raise InvalidCredentialError(f"Invalid token: {str(e)}")

        try:
            claims = CredentialClaims(**payload)
        except ValidationError as e:
            raise InvalidCredentialError(f"Invalid token claims: {str(e)}")

        now = self._clock()
        if now >= claims.exp + self.leeway:
            raise CredentialExpiredError(f"Token {claims.jti} has expired")
        if now < claims.nbf - self.leeway:
            raise InvalidCredentialError(f"Token {claims.jti} is not yet valid")

        return claims

    def refresh(self, token: str, ttl: Duration = 3600) -> str:
        """
        Re-issue a credential with a fresh validity window

        The new credential keeps subject, name, role and peer association,
        gets a new jti, and always expires strictly later than the
        presented one. The presented token is not invalidated here.

        Args:
            token: Current JWT string
            ttl: Validity window of the new credential

        Returns:
            New signed JWT string

        Raises:
            InvalidCredentialError: If the presented token is invalid
        """
        claims = self.validate(token)
        return self.reissue(claims, ttl)

    def reissue(self, claims: CredentialClaims, ttl: Duration = 3600) -> str:
        """
        Issue a successor credential for already-validated claims

        Args:
            claims: Validated claims of the current credential
            ttl: Validity window of the new credential

        Returns:
            New signed JWT string
        """
        now = self._now()
        expires_at = max(now + _seconds(ttl), claims.exp + 1)
        new_claims = self._build_claims(
            claims.sub, claims.name, claims.role, claims.peer_id, now, expires_at
        )
        logger.info(f"Refreshed credential {claims.jti} -> {new_claims.jti}")
        return self._encode(new_claims)

    def peek_claims(self, token: str) -> dict:
        """
        Get token payload without verification

        WARNING: Does not verify signature - use only for display.

        Args:
            token: JWT string

        Returns:
            Token payload as dictionary
        """
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            raise InvalidCredentialError(f"Invalid token format: {str(e)}")
