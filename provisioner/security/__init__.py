"""Credential services for the provisioner."""

from provisioner.security.token_service import (
    TokenService,
    InvalidCredentialError,
    CredentialExpiredError,
)

__all__ = [
    "TokenService",
    "InvalidCredentialError",
    "CredentialExpiredError",
]
