"""
Test Suite: Treasury Strategy
=============================
Run: pytest tests/test_treasury_strategy.py -v
"""

import pytest
from solders.keypair import Keypair

from feebot.errors import InsufficientBalanceError, InvalidConfigurationError
from feebot.strategies.treasury import TreasuryStrategy


@pytest.fixture
def treasury_address():
    return str(Keypair().pubkey())


@pytest.mark.asyncio
async def test_transfer(context, ledger, submitter, funded_wallet, treasury_address):
    strategy = TreasuryStrategy(context, ledger, submitter, payer=funded_wallet, treasury_address=treasury_address)

    signatures = await strategy.execute(0.25)

    assert len(signatures) == 1
    message = ledger.sent[0].message
    assert str(message.account_keys[1]) == treasury_address
    # System program transfer: u32 index 2 then u64 lamports
    data = bytes(message.instructions[0].data)
    assert int.from_bytes(data[4:12], "little") == 250_000_000

    stats = context.stats.treasury
    assert stats.total_transferred == 0.25
    assert stats.transfer_count == 1
    assert stats.transfer_history[0].destination == treasury_address


@pytest.mark.asyncio
async def test_insufficient_balance(context, ledger, submitter, treasury_address):
    strategy = TreasuryStrategy(context, ledger, submitter, payer=Keypair(), treasury_address=treasury_address)

    with pytest.raises(InsufficientBalanceError):
        await strategy.execute(1.0)
    assert ledger.sent == []


@pytest.mark.asyncio
async def test_failure_reported_as_outcome(context, ledger, submitter, funded_wallet, treasury_address):
    ledger.fail_execution_on = {0}
    strategy = TreasuryStrategy(context, ledger, submitter, payer=funded_wallet, treasury_address=treasury_address)

    outcome = await strategy.run(0.25)

    assert outcome.success is False
    assert outcome.error_kind == "TransactionFailedError"
    assert context.stats.treasury.transfer_count == 0


def test_missing_address(context, ledger, submitter):
    with pytest.raises(InvalidConfigurationError):
        TreasuryStrategy(context, ledger, submitter, payer=Keypair(), treasury_address=None)


def test_invalid_address(context, ledger, submitter):
    with pytest.raises(InvalidConfigurationError):
        TreasuryStrategy(context, ledger, submitter, payer=Keypair(), treasury_address="not-a-wallet")
