"""
Fee Engine Test Configuration
=============================
Shared fixtures and pytest markers for the test suite.
"""

import pytest
from solders.keypair import Keypair

from feebot.engine.context import EngineContext
from feebot.solana.bonding_curve import BondingCurve
from feebot.solana.models import ReserveState
from feebot.solana.tx_submitter import TransactionSubmitter
from tests.mocks.mock_ledger import MockLedgerClient


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture
def reserves():
    """Fresh pump.fun curve with a little SOL already deposited."""
    return ReserveState(
        virtual_token_reserves=1_073_000_000_000_000,
        virtual_sol_reserves=31_000_000_000,
        real_token_reserves=793_100_000_000_000,
        real_sol_reserves=1_000_000_000,
        token_total_supply=1_000_000_000_000_000,
        complete=False,
    )


@pytest.fixture
def ledger():
    return MockLedgerClient()


@pytest.fixture
def context():
    return EngineContext()


@pytest.fixture
def dry_run_context():
    return EngineContext(dry_run=True)


@pytest.fixture
def submitter(ledger):
    """Submitter that never sleeps between retries or polls."""
    return TransactionSubmitter(ledger, backoff_base=0, poll_interval=0)


@pytest.fixture
def mint():
    return Keypair().pubkey()


@pytest.fixture
def bonding_curve(ledger, mint, reserves):
    curve = BondingCurve(ledger, mint)
    ledger.set_reserves(curve.address, reserves)
    return curve


@pytest.fixture
def funded_wallet(ledger):
    wallet = Keypair()
    ledger.set_balance(wallet.pubkey(), 100_000_000_000)
    return wallet
