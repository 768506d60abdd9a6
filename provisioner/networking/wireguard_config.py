"""
WireGuard Client Configuration

Defines the client-facing configuration models and renders them into the
native WireGuard text format (wg-quick .conf).

Rendering is a pure function of the model: no key or address validation
happens here. Malformed input must be rejected before a config is built.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class ClientInterface(BaseModel):
    """
    Client [Interface] section

    The peer's own key and addresses inside the tunnel.
    """
    private_key: str = Field(
        "",
        description="Base64-encoded private key of the client",
    )
    address: List[str] = Field(
        default_factory=list,
        description="Tunnel addresses in CIDR notation (e.g., 10.0.0.2/32)",
    )
    dns: List[str] = Field(
        default_factory=list,
        description="Resolver addresses pushed to the client",
    )

    model_config = ConfigDict(frozen=False)


class ServerPeer(BaseModel):
    """
    Client [Peer] section

    Describes the server interface as seen by the client.
    """
    public_key: str = Field(
        "",
        description="Base64-encoded public key of the server interface",
    )
    endpoint: str = Field(
        "",
        description="Reachable server endpoint (host:port)",
    )
    allowed_ips: List[str] = Field(
        default_factory=list,
        description="Prefixes routed through the tunnel",
    )
    preshared_key: Optional[str] = Field(
        None,
        description="Optional symmetric preshared key",
    )

    model_config = ConfigDict(frozen=False)


class ClientConfig(BaseModel):
    """
    Complete client configuration

    One [Interface] record and one [Peer] record.
    """
    interface: ClientInterface = Field(
        default_factory=ClientInterface,
        description="Client interface section",
    )
    peer: ServerPeer = Field(
        default_factory=ServerPeer,
        description="Server peer section",
    )

    def to_wireguard_config(self) -> str:
        """
        Convert configuration to WireGuard config file format

        Field order: PrivateKey, Address*, DNS* then PublicKey, Endpoint,
        AllowedIPs*, PresharedKey (only when set).

        Returns:
            String representation of the client configuration file
        """
        lines = ["[Interface]"]
        lines.append(f"PrivateKey = {self.interface.private_key}")
        for address in self.interface.address:
            lines.append(f"Address = {address}")
        for dns in self.interface.dns:
            lines.append(f"DNS = {dns}")
        lines.append("")

        lines.append("[Peer]")
        lines.append(f"PublicKey = {self.peer.public_key}")
        lines.append(f"Endpoint = {self.peer.endpoint}")
        for allowed_ip in self.peer.allowed_ips:
            lines.append(f"AllowedIPs = {allowed_ip}")
        if self.peer.preshared_key:
            lines.append(f"PresharedKey = {self.peer.preshared_key}")

        return "\n".join(lines) + "\n"


def render_client_config(
    private_key: str,
    addresses: List[str],
    server_public_key: str,
    server_endpoint: str,
    allowed_ips: List[str],
    dns: Optional[List[str]] = None,
    preshared_key: Optional[str] = None,
) -> str:
    """
    Render a client configuration from its parts

    Convenience wrapper around ClientConfig.to_wireguard_config().
    """
    config = ClientConfig(
        interface=ClientInterface(
            private_key=private_key,
            address=addresses,
            dns=dns or [],
        ),
        peer=ServerPeer(
            public_key=server_public_key,
            endpoint=server_endpoint,
            allowed_ips=allowed_ips,
            preshared_key=preshared_key,
        ),
    )
    return config.to_wireguard_config()
