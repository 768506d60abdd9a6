"""
WireGuard Networking Package

Key material generation and client configuration rendering.
"""

from provisioner.networking.wireguard_keys import (
    WireGuardKeyError,
    generate_keypair,
    generate_preshared_key,
    get_public_key_from_private,
    validate_public_key,
    validate_private_key,
    is_valid_public_key,
    is_valid_private_key,
)

from provisioner.networking.wireguard_config import (
    ClientConfig,
    ClientInterface,
    ServerPeer,
    render_client_config,
)

__all__ = [
    "WireGuardKeyError",
    "generate_keypair",
    "generate_preshared_key",
    "get_public_key_from_private",
    "validate_public_key",
    "validate_private_key",
    "is_valid_public_key",
    "is_valid_private_key",
    "ClientConfig",
    "ClientInterface",
    "ServerPeer",
    "render_client_config",
]
