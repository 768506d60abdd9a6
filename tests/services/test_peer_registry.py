"""
Unit tests for the SQL peer registry

Tests peer and interface persistence and uniqueness enforcement.
"""

from datetime import datetime

import pytest

from provisioner.models.peer import Peer, WireGuardInterface
from provisioner.networking.wireguard_keys import generate_keypair
from provisioner.services.peer_registry import DuplicateRecordError, SQLPeerRegistry


def _peer(name, address="10.0.0.1/32", public_key=None):
    peer = Peer(name=name, public_key=public_key or generate_keypair()[1])
    peer.allowed_ips = [address]
    return peer


@pytest.fixture
def registry(session_factory):
    return SQLPeerRegistry(session_factory)


class TestPeerPersistence:
    """Peer CRUD"""

    def test_create_and_fetch_peer(self, registry):
        """
        Given a new peer
        When storing it
        Then it should be retrievable by id, name and public key
        """
        stored = registry.create_peer(_peer("alice"))

        assert stored.id is not None
        assert registry.get_peer(stored.id).name == "alice"
        assert registry.get_peer_by_name("alice").id == stored.id
        assert registry.get_peer_by_public_key(stored.public_key).id == stored.id

    def test_allowed_ips_round_trip(self, registry):
        peer = Peer(name="multi", public_key=generate_keypair()[1])
        peer.allowed_ips = ["10.0.0.5/32", "fd00::5/128"]

        registry.create_peer(peer)
        fetched = registry.get_peer(peer.id)

        assert fetched.allowed_ips == ["10.0.0.5/32", "fd00::5/128"]
        assert fetched.address == "10.0.0.5"

    def test_missing_peer_returns_none(self, registry):
        assert registry.get_peer("does-not-exist") is None
        assert registry.get_peer_by_name("nobody") is None

    def test_duplicate_name_rejected(self, registry):
        """
        Given stored peer alice
        When storing another peer named alice
        Then DuplicateRecordError should be raised
        """
        registry.create_peer(_peer("alice"))

        with pytest.raises(DuplicateRecordError):
            registry.create_peer(_peer("alice", address="10.0.0.2/32"))

    def test_duplicate_public_key_rejected(self, registry):
        _, public_key = generate_keypair()
        registry.create_peer(_peer("alice", public_key=public_key))

        with pytest.raises(DuplicateRecordError):
            registry.create_peer(_peer("bob", public_key=public_key))

    def test_list_peers(self, registry):
        for name in ("a", "b", "c"):
            registry.create_peer(_peer(name))

        assert sorted(p.name for p in registry.list_peers()) == ["a", "b", "c"]

    def test_update_peer(self, registry):
        peer = registry.create_peer(_peer("alice"))

        peer.name = "alice-laptop"
        peer.is_active = False
        registry.update_peer(peer)

        fetched = registry.get_peer(peer.id)
        assert fetched.name == "alice-laptop"
        assert fetched.is_active is False

    def test_update_to_taken_name_rejected(self, registry):
        registry.create_peer(_peer("alice"))
        bob = registry.create_peer(_peer("bob"))

        bob.name = "alice"
        with pytest.raises(DuplicateRecordError):
            registry.update_peer(bob)

    def test_update_last_seen(self, registry):
        peer = registry.create_peer(_peer("alice"))
        seen = datetime(2026, 1, 1, 12, 0, 0)

        assert registry.update_peer_last_seen(peer.id, seen) is True
        assert registry.get_peer(peer.id).last_seen == seen
        assert registry.update_peer_last_seen("missing", seen) is False

    def test_delete_peer(self, registry):
        """
        Given stored peer
        When deleting it twice
        Then the first delete succeeds and the second reports absence
        """
        peer = registry.create_peer(_peer("alice"))

        assert registry.delete_peer(peer.id) is True
        assert registry.get_peer(peer.id) is None
        assert registry.delete_peer(peer.id) is False


class TestInterfacePersistence:

    def test_save_and_get_interface(self, registry):
        private_key, public_key = generate_keypair()

        registry.save_interface(WireGuardInterface(
            name="wg0",
            public_key=public_key,
            private_key=private_key,
            listen_port=51820,
            address="10.0.0.0/24",
        ))

        interface = registry.get_interface("wg0")
        assert interface.public_key == public_key
        assert interface.listen_port == 51820
        assert registry.get_interface("wg1") is None

    def test_save_interface_overwrites(self, registry):
        private_key, public_key = generate_keypair()
        interface = WireGuardInterface(
            name="wg0",
            public_key=public_key,
            private_key=private_key,
            listen_port=51820,
            address="10.0.0.0/24",
        )
        registry.save_interface(interface)

        interface.listen_port = 51821
        registry.save_interface(interface)

        assert registry.get_interface("wg0").listen_port == 51821
