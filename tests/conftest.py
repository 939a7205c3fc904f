"""
Shared fixtures: an in-memory banking system on a simulated clock, with an
admin, a banker and two clients.
"""

import pytest
from datetime import datetime, timezone

from retail_banking.clock import Clock
from retail_banking.config import BankConfig
from retail_banking.system import BankingSystem
from retail_banking.users import Role


START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return Clock(START)


@pytest.fixture
def config():
    return BankConfig(
        _env_file=None,
        storage_backend="memory",
        jwt_secret="test-secret",
    )


@pytest.fixture
def system(config, clock):
    banking_system = BankingSystem(config=config, clock=clock)
    yield banking_system
    banking_system.close()


@pytest.fixture
def service(system):
    return system.service


@pytest.fixture
def admin_session(service):
    return service.login("admin", "admin")


@pytest.fixture
def banker(service, admin_session):
    return service.register_user(admin_session, "banker", "banker-pass", Role.BANKER)


@pytest.fixture
def banker_session(service, banker):
    return service.login("banker", "banker-pass")


@pytest.fixture
def alice(service, admin_session):
    return service.register_user(admin_session, "alice", "alice-pass")


@pytest.fixture
def alice_session(service, alice):
    return service.login("alice", "alice-pass")


@pytest.fixture
def bob(service, admin_session):
    return service.register_user(admin_session, "bob", "bob-pass")


@pytest.fixture
def bob_session(service, bob):
    return service.login("bob", "bob-pass")
