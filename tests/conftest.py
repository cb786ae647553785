"""
Shared fixtures for the ledger and session tests
"""

import pytest

from kodbank.config import KodbankConfig
from kodbank.storage import InMemoryStorage, SQLiteStorage
from kodbank.system import LedgerSystem

TEST_SECRET = "test-secret-key"
TEST_PASSWORD = "correct-horse-9"


@pytest.fixture
def config():
    """Configuration with a known signing key"""
    return KodbankConfig(
        jwt_secret=TEST_SECRET,
        database_url="memory://",
        log_level="WARNING",
    )


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Every backend-facing test runs against both stores"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "kodbank.db", timeout=30.0)
    yield backend
    backend.close()


@pytest.fixture
def system(config, storage):
    """Fully wired ledger system"""
    return LedgerSystem(config, storage)


@pytest.fixture
def customer(system):
    """Factory: register and log in a customer, returning (account, token, identity)"""
    def create(username, email=None, phone="9876543210"):
        account = system.issuer.register(
            username=username,
            password=TEST_PASSWORD,
            email=email or f"{username.lower()}@example.com",
            phone=phone,
        )
        login = system.issuer.login(username, TEST_PASSWORD)
        identity = system.verifier.authenticate(login.token)
        return account, login.token, identity
    return create
