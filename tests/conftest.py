"""
Pytest configuration and shared fixtures
"""

import pytest

from provisioner.db.base import create_session_factory, init_db
from provisioner.security.token_service import TokenService
from provisioner.services.enrollment_journal import EnrollmentJournal
from provisioner.services.ip_pool_manager import IPPoolManager
from provisioner.services.peer_registry import SQLPeerRegistry
from provisioner.services.token_revocation_service import TokenRevocationService
from provisioner.services.wireguard_provisioning_service import (
    WireGuardProvisioningService,
)

TEST_SECRET = "test-secret-key-for-unit-tests-0123456789abcdef"


class FakeClock:
    """Settable time source for token tests"""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_service(clock):
    return TokenService(secret_key=TEST_SECRET, clock=clock)


@pytest.fixture
def database_url(tmp_path):
    """File-backed SQLite database, fresh per test"""
    return f"sqlite:///{tmp_path / 'provisioner.db'}"


@pytest.fixture
def session_factory(database_url):
    engine, factory = create_session_factory(database_url)
    init_db(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def make_service(session_factory, token_service):
    """Factory wiring a provisioning service over the test database"""

    def _make(network="10.0.0.0/24", **kwargs):
        service = WireGuardProvisioningService(
            registry=SQLPeerRegistry(session_factory),
            token_service=token_service,
            revocations=TokenRevocationService(session_factory),
            journal=EnrollmentJournal(session_factory),
            ip_pool=IPPoolManager(network=network),
            **kwargs
        )
        service.initialize_interface()
        return service

    return _make


@pytest.fixture
def provisioning_service(make_service):
    return make_service()
