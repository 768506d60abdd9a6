"""
WireGuard keypair generation and validation.

This module provides functionality for:
- Generating clamped Curve25519 keypairs for interfaces and peers
- Generating preshared keys
- Deriving public keys from private keys
- Validating the base64 key format

WireGuard uses Curve25519 for key exchange. Keys travel as standard
base64 strings (44 characters for 32 bytes).
"""

import base64
import binascii
import secrets
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives import serialization

KEY_LENGTH = 32


class WireGuardKeyError(Exception):
    """Custom exception for WireGuard key operations."""
    pass


def _clamp(scalar: bytes) -> bytes:
    """Apply the Curve25519 scalar clamping rules."""
    clamped = bytearray(scalar)
    clamped[0] &= 248
    clamped[31] &= 127
    clamped[31] |= 64
    return bytes(clamped)


def _random_bytes() -> bytes:
    try:
        return secrets.token_bytes(KEY_LENGTH)
    except OSError as e:
        raise WireGuardKeyError(f"Entropy source unavailable: {e}")


def _public_from_scalar(scalar: bytes) -> bytes:
    private_key_obj = X25519PrivateKey.from_private_bytes(scalar)
    return private_key_obj.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )


def _decode_key(key, kind: str) -> bytes:
    if key is None or not isinstance(key, str):
        raise WireGuardKeyError(f"{kind} key must be a string")

    try:
        decoded = base64.b64decode(key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise WireGuardKeyError(f"Invalid base64 encoding for {kind} key: {e}")

    if len(decoded) != KEY_LENGTH:
        raise WireGuardKeyError(
            f"{kind} key must be {KEY_LENGTH} bytes, got {len(decoded)}"
        )

    return decoded


def generate_keypair() -> Tuple[str, str]:
    """
    Generate a new WireGuard keypair.

    A random 32-byte scalar is clamped and multiplied with the curve base
    point to obtain the public key.

    Returns:
        Tuple[str, str]: (private_key, public_key) in base64 format.
                        Both keys are 44 characters long.

    Raises:
        WireGuardKeyError: If the entropy source fails

    Example:
        >>> private_key, public_key = generate_keypair()
        >>> len(private_key)
        44
    """
    private_key_bytes = _clamp(_random_bytes())
    public_key_bytes = _public_from_scalar(private_key_bytes)

    private_key_b64 = base64.b64encode(private_key_bytes).decode('ascii')
    public_key_b64 = base64.b64encode(public_key_bytes).decode('ascii')

    return private_key_b64, public_key_b64


def generate_preshared_key() -> str:
    """
    Generate a symmetric preshared key (32 random bytes, no clamping).

    Returns:
        str: Base64-encoded preshared key
    """
    return base64.b64encode(_random_bytes()).decode('ascii')


def get_public_key_from_private(private_key: str) -> str:
    """
    Derive the public key from a private key.

    Args:
        private_key: Base64-encoded private key

    Returns:
        str: Base64-encoded public key

    Raises:
        WireGuardKeyError: If the private key is invalid
    """
    private_key_bytes = _decode_key(private_key, "private")

    try:
        public_key_bytes = _public_from_scalar(private_key_bytes)
    except ValueError as e:
        raise WireGuardKeyError(f"Invalid private key: {e}")

    return base64.b64encode(public_key_bytes).decode('ascii')


def validate_public_key(public_key) -> None:
    """
    Check that a public key decodes from base64 to exactly 32 bytes.

    Curve point validity is not checked.

    Raises:
        WireGuardKeyError: If the key is malformed
    """
    _decode_key(public_key, "public")


def validate_private_key(private_key) -> None:
    """
    Check that a private key decodes from base64 to exactly 32 bytes.

    Raises:
        WireGuardKeyError: If the key is malformed
    """
    _decode_key(private_key, "private")


def is_valid_public_key(public_key) -> bool:
    try:
        validate_public_key(public_key)
    except WireGuardKeyError:
        return False
    return True


def is_valid_private_key(private_key) -> bool:
    try:
        validate_private_key(private_key)
    except WireGuardKeyError:
        return False
    return True
