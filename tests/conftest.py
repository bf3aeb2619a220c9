"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount

from voting_power_exchange.exchange.signing import (
    AuthorizationVerifier,
    ExchangeDomain,
    SmartAccountRegistry,
)
from voting_power_exchange.kernel.event_store import SQLiteEventStore
from voting_power_exchange.kernel.settings import ExchangeSettings
from voting_power_exchange.kernel.time import TestTimeProvider
from voting_power_exchange.ledger.interfaces import EXCHANGER_ROLE, MANAGER_ROLE
from voting_power_exchange.ledger.memory import (
    InMemoryAccessControl,
    InMemoryGovernanceLedger,
    InMemoryUtilityLedger,
)
from voting_power_exchange.vpx import VotingPowerExchange

from tests.helpers import (
    ADMIN,
    GOVERNANCE_TOKEN,
    MANAGER,
    OPERATOR,
    TOKEN,
    UTILITY_TOKEN,
)


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL mode leaves -wal and -shm siblings)
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC (unix 1736942400)
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> ExchangeSettings:
    return ExchangeSettings(utility_token=UTILITY_TOKEN, governance_token=GOVERNANCE_TOKEN)


@pytest.fixture
def domain(settings: ExchangeSettings) -> ExchangeDomain:
    return ExchangeDomain(
        name=settings.domain_name,
        version=settings.domain_version,
        chain_id=settings.chain_id,
        verifying_contract=settings.verifying_contract,
    )


@pytest.fixture
def smart_accounts() -> SmartAccountRegistry:
    return SmartAccountRegistry()


@pytest.fixture
def verifier(domain: ExchangeDomain, smart_accounts: SmartAccountRegistry) -> AuthorizationVerifier:
    return AuthorizationVerifier(domain, smart_accounts)


@pytest.fixture
def alice() -> LocalAccount:
    """Deterministic requester key - never use outside tests"""
    return Account.from_key("0x" + "11" * 32)


@pytest.fixture
def bob() -> LocalAccount:
    return Account.from_key("0x" + "22" * 32)


@pytest.fixture
def utility_ledger() -> InMemoryUtilityLedger:
    return InMemoryUtilityLedger(UTILITY_TOKEN)


@pytest.fixture
def governance_ledger() -> InMemoryGovernanceLedger:
    return InMemoryGovernanceLedger(GOVERNANCE_TOKEN)


@pytest.fixture
def access_control() -> InMemoryAccessControl:
    roles = InMemoryAccessControl(ADMIN)
    roles.grant_role(EXCHANGER_ROLE, OPERATOR, sender=ADMIN)
    roles.grant_role(MANAGER_ROLE, MANAGER, sender=ADMIN)
    return roles


@pytest.fixture
def vpx(
    temp_db: Path,
    utility_ledger: InMemoryUtilityLedger,
    governance_ledger: InMemoryGovernanceLedger,
    access_control: InMemoryAccessControl,
    settings: ExchangeSettings,
    test_time: TestTimeProvider,
    smart_accounts: SmartAccountRegistry,
) -> VotingPowerExchange:
    """
    Exchange with a funded operator

    The operator holds 1,000,000 utility tokens and has approved the
    exchange to spend all of them.
    """
    exchange = VotingPowerExchange(
        temp_db,
        utility_ledger,
        governance_ledger,
        access_control,
        settings=settings,
        time_provider=test_time,
        smart_accounts=smart_accounts,
    )
    utility_ledger.mint(OPERATOR, 1_000_000 * TOKEN)
    utility_ledger.approve(OPERATOR, exchange.address, 1_000_000 * TOKEN)
    return exchange
