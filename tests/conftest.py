"""
Pytest configuration and shared fixtures for wallet-gate tests.
"""

import os

import pytest

# Set test environment before importing app
os.environ["FLASK_ENV"] = "testing"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["ADMIN_USER_IDS"] = "999"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["FORCE_HTTPS"] = "false"
os.environ["CORS_ORIGINS"] = "https://verify.example.com"
os.environ["VERIFY_PAGE_URL"] = "https://verify.example.com/sign"
for _name in ("REDIS_URL", "KV_URL", "REDIS_HOST", "DEFAULT_GUILD_ID", "CHAIN_RPC_URLS"):
    os.environ.pop(_name, None)

from eth_account import Account  # noqa: E402
from eth_account.messages import encode_defunct  # noqa: E402
from web3 import Web3  # noqa: E402

from wallet_gate.errors import UpstreamUnavailable  # noqa: E402
from wallet_gate.storage import MemoryStore  # noqa: E402

GUILD_ID = "1000"
ROLE_ID = "2000"
OTHER_ROLE_ID = "2001"
MEMBER_ID = "3000"
CHAIN_ID = 80084
TOKEN_ADDRESS = Web3.to_checksum_address("0x" + "ab" * 20)
OTHER_TOKEN_ADDRESS = Web3.to_checksum_address("0x" + "cd" * 20)


class FakeChains:
    """Chain registry stand-in with scripted balances and failures."""

    def __init__(self):
        self.balances = {}
        self.failing_chains = set()
        self.names = {}
        self.calls = []

    def set_balance(self, chain_id, token, owner, amount):
        self.balances[(int(chain_id), Web3.to_checksum_address(token), Web3.to_checksum_address(owner))] = amount

    @property
    def chain_ids(self):
        return [CHAIN_ID]

    def balance_of(self, chain_id, token_address, owner):
        self.calls.append((chain_id, token_address, owner))
        if int(chain_id) in self.failing_chains:
            raise UpstreamUnavailable()
        return self.balances.get((int(chain_id), token_address, owner), 0)

    def token_name(self, chain_id, token_address):
        if token_address not in self.names:
            raise UpstreamUnavailable()
        return self.names[token_address]

    def is_connected(self, chain_id):
        return int(chain_id) not in self.failing_chains


class FakePlatform:
    """Chat platform stand-in recording role grants and follow-ups."""

    def __init__(self):
        self.member_roles = {}
        self.grants = []
        self.followups = []
        self.fail_followups = False

    def get_member_role_ids(self, guild_id, member_id):
        return set(self.member_roles.get((guild_id, member_id), set()))

    def add_member_role(self, guild_id, member_id, role_id):
        self.grants.append((guild_id, member_id, role_id))
        self.member_roles.setdefault((guild_id, member_id), set()).add(role_id)

    def send_followup(self, application_id, interaction_token, content):
        if self.fail_followups:
            raise UpstreamUnavailable()
        self.followups.append((application_id, interaction_token, content))


@pytest.fixture
def store():
    """Fresh in-memory store per test."""
    return MemoryStore()


@pytest.fixture
def chains():
    return FakeChains()


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def app(store, chains, platform):
    """Create and configure a test Flask application instance."""
    from wallet_gate.factory import create_app

    flask_app = create_app({"TESTING": True}, store=store, chains=chains, platform=platform)
    flask_app.config.update({"TESTING": True})

    with flask_app.app_context():
        yield flask_app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["wallet_gate"]


@pytest.fixture
def admin_headers():
    """Provide admin authentication headers for API requests."""
    return {"Authorization": "Bearer test-admin-token", "Content-Type": "application/json"}


@pytest.fixture
def wallet():
    """Deterministic test wallet."""
    return Account.from_key("0x" + "11" * 32)


@pytest.fixture
def other_wallet():
    return Account.from_key("0x" + "22" * 32)


@pytest.fixture
def sign():
    """Return a helper producing a 0x-prefixed personal_sign signature."""

    def _sign(account, message):
        signed = account.sign_message(encode_defunct(text=message))
        return "0x" + bytes(signed.signature).hex()

    return _sign


# Pytest configuration hooks
def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "unit: fast tests with no I/O")
    config.addinivalue_line("markers", "integration: tests that exercise the HTTP surface")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        # Add 'unit' marker to tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add 'integration' marker to tests in integration/ directory
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
