"""
Unit tests for WireGuard Provisioning Service

Tests enrollment, credential lifecycle, peer management and recovery.
"""

import threading

import pytest

from provisioner.models.credential_claims import Role
from provisioner.models.enrollment import EnrollmentState
from provisioner.networking.wireguard_keys import generate_keypair, get_public_key_from_private
from provisioner.security.token_service import CredentialExpiredError, InvalidCredentialError
from provisioner.services.peer_registry import StorageError
from provisioner.services.token_revocation_service import CredentialReplayError
from provisioner.services.wireguard_provisioning_service import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    ResourceExhaustedError,
    UnauthorizedError,
)


class TestEnrollment:
    """Enrollment with one-time credentials"""

    def test_enroll_new_peer(self, provisioning_service):
        """
        Given an enrollment token for alice
        When alice enrolls without a public key
        Then she should get the first usable address and a client credential
        """
        token = provisioning_service.issue_enrollment_token("alice")

        result = provisioning_service.enroll(token, "alice")

        assert result.allowed_ips == ["10.0.0.1/32"]
        assert result.peer.address == "10.0.0.1"

        claims = provisioning_service.authenticate(result.access_token)
        assert claims.role == Role.CLIENT
        assert claims.peer_id == result.peer_id
        assert claims.name == "alice"

        stored = provisioning_service.get_peer(result.peer_id)
        assert stored.name == "alice"
        assert stored.is_active is True
        assert get_public_key_from_private(stored.private_key) == stored.public_key

    def test_enroll_with_client_public_key(self, provisioning_service):
        """
        Given a client-supplied public key
        When enrolling
        Then the key is stored and no private key is held
        """
        _, public_key = generate_keypair()
        token = provisioning_service.issue_enrollment_token("bob")

        result = provisioning_service.enroll(token, "bob", client_public_key=public_key)

        stored = provisioning_service.get_peer(result.peer_id)
        assert stored.public_key == public_key
        assert stored.private_key is None

    def test_enroll_with_malformed_public_key(self, provisioning_service):
        token = provisioning_service.issue_enrollment_token("bob")

        with pytest.raises(InvalidRequestError):
            provisioning_service.enroll(token, "bob", client_public_key="bad-key")

        assert provisioning_service.list_peers() == []
        jti = provisioning_service.token_service.validate(token).jti
        assert provisioning_service.revocations.is_consumed(jti) is False

    def test_enroll_journal_reaches_done(self, provisioning_service):
        token = provisioning_service.issue_enrollment_token("alice")

        result = provisioning_service.enroll(token, "alice")

        done = provisioning_service.journal.list_by_state(EnrollmentState.DONE)
        assert len(done) == 1
        assert done[0].peer_id == result.peer_id
        assert done[0].assigned_address == "10.0.0.1"
        assert provisioning_service.journal.list_incomplete() == []

    def test_enroll_with_access_token_rejected(self, provisioning_service):
        """
        Given a user (non-enrollment) credential
        When used for enrollment
        Then UnauthorizedError should be raised and nothing allocated
        """
        provisioning_service.add_user("admin")
        user_token = provisioning_service.issue_token("admin")
        allocated_before = provisioning_service.get_pool_stats()["allocated_addresses"]

        with pytest.raises(UnauthorizedError):
            provisioning_service.enroll(user_token, "mallory")

        assert provisioning_service.get_pool_stats()["allocated_addresses"] == allocated_before
        assert provisioning_service.registry.get_peer_by_name("mallory") is None

    def test_enroll_existing_name_conflicts(self, provisioning_service):
        """
        Given a registered peer alice
        When enrolling another alice
        Then ConflictError should be raised and the token stay unused
        """
        provisioning_service.add_user("alice")
        token = provisioning_service.token_service.issue_enrollment("alice", ttl=600)

        with pytest.raises(ConflictError):
            provisioning_service.enroll(token, "alice")

        jti = provisioning_service.token_service.validate(token).jti
        assert provisioning_service.revocations.is_consumed(jti) is False

    def test_enrollment_token_is_single_use(self, provisioning_service):
        """
        Given an enrollment token already used
        When presented again
        Then CredentialReplayError should be raised
        """
        token = provisioning_service.issue_enrollment_token("alice")
        provisioning_service.enroll(token, "alice")

        with pytest.raises(CredentialReplayError):
            provisioning_service.enroll(token, "alice-second")

        assert len(provisioning_service.list_peers()) == 1

    def test_expired_enrollment_token(self, provisioning_service, clock):
        token = provisioning_service.issue_enrollment_token("alice", ttl=60)

        clock.advance(60)

        with pytest.raises(CredentialExpiredError):
            provisioning_service.enroll(token, "alice")

    def test_pool_exhaustion(self, make_service):
        """
        Given a /30 block (interface holds the network address)
        When enrolling four peers
        Then the fourth should fail with ResourceExhaustedError
        """
        service = make_service(network="10.0.0.0/30")

        addresses = []
        for name in ("a", "b", "c"):
            result = service.enroll(service.issue_enrollment_token(name), name)
            addresses.append(result.peer.address)

        assert addresses == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]

        with pytest.raises(ResourceExhaustedError):
            service.enroll(service.issue_enrollment_token("d"), "d")

        assert service.registry.get_peer_by_name("d") is None
        failed = service.journal.list_by_state(EnrollmentState.FAILED)
        assert len(failed) == 1
        assert failed[0].client_name == "d"

    def test_persistence_failure_releases_address(self, provisioning_service, monkeypatch):
        """
        Given the record store fails while persisting the peer
        When enrolling
        Then the allocated address is returned to the pool
        """
        def failing_create(peer):
            raise StorageError("disk full")

        monkeypatch.setattr(provisioning_service.registry, "create_peer", failing_create)
        token = provisioning_service.issue_enrollment_token("alice")

        with pytest.raises(StorageError):
            provisioning_service.enroll(token, "alice")

        assert provisioning_service.ip_pool.is_allocated("10.0.0.1") is False
        failed = provisioning_service.journal.list_by_state(EnrollmentState.FAILED)
        assert len(failed) == 1
        assert "addressed" in failed[0].error

    def test_concurrent_enrollments_get_distinct_addresses(self, provisioning_service):
        tokens = [
            (f"peer-{i}", provisioning_service.issue_enrollment_token(f"peer-{i}"))
            for i in range(8)
        ]
        results = []
        lock = threading.Lock()

        def worker(name, token):
            result = provisioning_service.enroll(token, name)
            with lock:
                results.append(result.peer.address)

        threads = [threading.Thread(target=worker, args=t) for t in tokens]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 8
        assert len(set(results)) == 8


class TestAdministration:
    """Administrative peer management"""

    def test_add_user_generates_keys(self, provisioning_service):
        peer = provisioning_service.add_user("alice")

        assert peer.address == "10.0.0.1"
        assert peer.private_key is not None

    def test_add_duplicate_user(self, provisioning_service):
        provisioning_service.add_user("alice")

        with pytest.raises(ConflictError):
            provisioning_service.add_user("alice")

    def test_add_user_empty_name(self, provisioning_service):
        with pytest.raises(InvalidRequestError):
            provisioning_service.add_user("   ")

    def test_issue_token_for_unknown_user(self, provisioning_service):
        with pytest.raises(NotFoundError):
            provisioning_service.issue_token("ghost")

    def test_issue_token_for_inactive_user(self, provisioning_service):
        peer = provisioning_service.add_user("alice")
        provisioning_service.update_peer(peer.id, is_active=False)

        with pytest.raises(UnauthorizedError):
            provisioning_service.issue_token("alice")

    def test_issue_enrollment_token_for_registered_name(self, provisioning_service):
        provisioning_service.add_user("alice")

        with pytest.raises(ConflictError):
            provisioning_service.issue_enrollment_token("alice")

    def test_rename_to_taken_name(self, provisioning_service):
        provisioning_service.add_user("alice")
        bob = provisioning_service.add_user("bob")

        with pytest.raises(ConflictError):
            provisioning_service.update_peer(bob.id, name="alice")

    def test_update_peer_fields(self, provisioning_service):
        peer = provisioning_service.add_user("alice")

        updated = provisioning_service.update_peer(
            peer.id, name="alice-laptop", endpoint="203.0.113.5:51820"
        )

        assert updated.name == "alice-laptop"
        assert updated.endpoint == "203.0.113.5:51820"

    def test_delete_peer_releases_address(self, make_service):
        """
        Given a full /30 block
        When deleting a peer and adding another
        Then the new peer should receive the released address
        """
        service = make_service(network="10.0.0.0/30")
        peers = [service.add_user(name) for name in ("a", "b", "c")]

        service.delete_peer(peers[1].id)
        replacement = service.add_user("d")

        assert replacement.address == "10.0.0.2"

    def test_delete_unknown_peer(self, provisioning_service):
        with pytest.raises(NotFoundError):
            provisioning_service.delete_peer("missing")

    def test_touch_peer_records_last_seen(self, provisioning_service):
        peer = provisioning_service.add_user("alice")

        provisioning_service.touch_peer(peer.id)

        assert provisioning_service.get_peer(peer.id).last_seen is not None


class TestCredentialLifecycle:
    """Authentication and refresh of access credentials"""

    def _enroll(self, service, name="alice"):
        return service.enroll(service.issue_enrollment_token(name), name)

    def test_authenticate_rejects_enrollment_token(self, provisioning_service):
        token = provisioning_service.issue_enrollment_token("alice")

        with pytest.raises(UnauthorizedError):
            provisioning_service.authenticate(token)

    def test_refresh_access(self, provisioning_service):
        """
        Given a client credential
        When refreshing it
        Then the new credential keeps the peer association and the old one
        is revoked
        """
        result = self._enroll(provisioning_service)
        old_claims = provisioning_service.authenticate(result.access_token)

        new_token = provisioning_service.refresh_access(old_claims)

        new_claims = provisioning_service.authenticate(new_token)
        assert new_claims.peer_id == result.peer_id
        assert new_claims.role == Role.CLIENT
        assert new_claims.exp > old_claims.exp

        revocation = provisioning_service.revocations.get_revocation(old_claims.jti)
        assert revocation.reason == "rotation"
        assert revocation.replaced_by_jti == new_claims.jti

        with pytest.raises(InvalidCredentialError):
            provisioning_service.authenticate(result.access_token)

    def test_refresh_twice_with_same_claims(self, provisioning_service):
        result = self._enroll(provisioning_service)
        claims = provisioning_service.authenticate(result.access_token)
        provisioning_service.refresh_access(claims)

        with pytest.raises(InvalidCredentialError):
            provisioning_service.refresh_access(claims)

    def test_refresh_after_peer_deleted(self, provisioning_service):
        """
        Given a client credential whose peer was deleted
        When refreshing
        Then NotFoundError should be raised
        """
        result = self._enroll(provisioning_service)
        claims = provisioning_service.authenticate(result.access_token)

        provisioning_service.delete_peer(result.peer_id)

        with pytest.raises(NotFoundError):
            provisioning_service.refresh_access(claims)

    def test_refresh_for_inactive_peer(self, provisioning_service):
        result = self._enroll(provisioning_service)
        claims = provisioning_service.authenticate(result.access_token)
        provisioning_service.update_peer(result.peer_id, is_active=False)

        with pytest.raises(UnauthorizedError):
            provisioning_service.refresh_access(claims)

    def test_authenticate_rejects_deactivated_peer(self, provisioning_service):
        """
        Given a user credential whose peer was deactivated
        When authenticating
        Then UnauthorizedError should be raised
        """
        peer = provisioning_service.add_user("admin")
        token = provisioning_service.issue_token("admin")
        provisioning_service.update_peer(peer.id, is_active=False)

        with pytest.raises(UnauthorizedError):
            provisioning_service.authenticate(token)

    def test_authenticate_rejects_deleted_peer(self, provisioning_service):
        peer = provisioning_service.add_user("admin")
        token = provisioning_service.issue_token("admin")
        provisioning_service.delete_peer(peer.id)

        with pytest.raises(InvalidCredentialError):
            provisioning_service.authenticate(token)

    def test_concurrent_refresh_single_successor(self, provisioning_service):
        """
        Given one client credential refreshed from many threads at once
        When they race
        Then exactly one successor should be issued and the rest rejected
        """
        result = self._enroll(provisioning_service)
        claims = provisioning_service.authenticate(result.access_token)
        successors = []
        rejected = []
        lock = threading.Lock()

        def worker():
            try:
                token = provisioning_service.refresh_access(claims)
            except InvalidCredentialError:
                with lock:
                    rejected.append(1)
                return
            with lock:
                successors.append(token)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(successors) == 1
        assert len(rejected) == 7
        revocation = provisioning_service.revocations.get_revocation(claims.jti)
        new_jti = provisioning_service.token_service.peek_claims(successors[0])["jti"]
        assert revocation.replaced_by_jti == new_jti

    def test_refresh_enrollment_claims_rejected(self, provisioning_service):
        token = provisioning_service.issue_enrollment_token("alice")
        claims = provisioning_service.token_service.validate(token)

        with pytest.raises(UnauthorizedError):
            provisioning_service.refresh_access(claims)


class TestClientConfig:

    def test_client_config(self, provisioning_service):
        """
        Given an enrolled peer
        When fetching its client config
        Then it should point at the interface with default routing and DNS
        """
        result = provisioning_service.enroll(
            provisioning_service.issue_enrollment_token("alice"), "alice"
        )
        interface = provisioning_service.get_interface()

        config = provisioning_service.get_client_config(result.peer_id)

        assert config.interface.address == ["10.0.0.1/32"]
        assert config.interface.dns == ["8.8.8.8", "8.8.4.4"]
        assert config.interface.private_key == result.peer.private_key
        assert config.peer.public_key == interface.public_key
        assert config.peer.endpoint == "vpn.example.com:51820"
        assert config.peer.allowed_ips == ["0.0.0.0/0"]
        assert config.peer.preshared_key is None

    def test_client_config_with_preshared_key(self, make_service):
        service = make_service(preshared_keys=True, public_host="vpn.test")
        peer = service.add_user("alice")

        config = service.get_client_config(peer.id)

        assert config.peer.preshared_key == peer.preshared_key
        assert config.peer.endpoint == "vpn.test:51820"
        assert "PresharedKey = " in config.to_wireguard_config()

    def test_client_config_unknown_peer(self, provisioning_service):
        with pytest.raises(NotFoundError):
            provisioning_service.get_client_config("missing")


class TestRecovery:
    """Restart behaviour"""

    def test_interface_initialization_is_idempotent(self, make_service):
        first = make_service().get_interface()
        second = make_service().get_interface()

        assert first.public_key == second.public_key
        assert first.address == "10.0.0.0/24"

    def test_pool_rebuilt_from_registry(self, make_service):
        """
        Given peers stored by a previous process
        When a new service starts over the same database
        Then their addresses stay allocated
        """
        service = make_service()
        service.add_user("a")
        inactive = service.add_user("b")
        service.update_peer(inactive.id, is_active=False)

        restarted = make_service()

        assert restarted.ip_pool.is_allocated("10.0.0.1")
        assert restarted.ip_pool.is_allocated("10.0.0.2")
        assert restarted.add_user("c").address == "10.0.0.3"

    def test_reconcile_interrupted_enrollments(self, make_service):
        """
        Given journal records left open by a crash
        When reconciling at startup
        Then all are closed and orphaned peers are reported
        """
        service = make_service()
        journal = service.journal

        addressed = journal.begin("lost")
        addressed = journal.advance(addressed, EnrollmentState.NAME_CHECKED)
        journal.advance(addressed, EnrollmentState.ADDRESSED, assigned_address="10.0.0.9")

        orphan_peer = service.add_user("orphan")
        persisted = journal.begin("orphan")
        journal.advance(persisted, EnrollmentState.PERSISTED, peer_id=orphan_peer.id)

        closed = make_service().reconcile_enrollments()

        assert {r.client_name for r in closed} == {"lost", "orphan"}
        assert journal.list_incomplete() == []

        errors = {r.client_name: r.error for r in closed}
        assert "10.0.0.9" in errors["lost"]
        assert orphan_peer.id in errors["orphan"]
        assert service.registry.get_peer(orphan_peer.id) is not None
