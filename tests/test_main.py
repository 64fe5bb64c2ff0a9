"""
Test Suite: Engine Wiring
=========================
Verifies that FeeBot assembles the engine from a configuration.

Run: pytest tests/test_main.py -v
"""

import pytest
from solders.keypair import Keypair

from feebot.config import BURN_ADDRESS, EngineConfig
from feebot.engine.orchestrator import STRATEGY_ORDER
from feebot.errors import InvalidConfigurationError
from feebot.main import FeeBot


@pytest.fixture
def config():
    return EngineConfig(
        rpc_endpoint="http://localhost:8899",
        token_address=str(Keypair().pubkey()),
        creator_private_key=str(Keypair()),
        burn_wallet_private_key=str(Keypair()),
        treasury_wallet_address=str(Keypair().pubkey()),
        airdrop_excluded_wallets=["ExcludedWallet111"],
        dry_run=True,
    )


def test_wiring(config):
    bot = FeeBot(config)

    assert [s.name for s in bot.orchestrator.strategies] == list(STRATEGY_ORDER)
    assert bot.submitter.dry_run is True
    assert bot.context.dry_run is True
    assert bot.orchestrator.check_interval == 30


def test_airdrop_exclusions(config):
    bot = FeeBot(config)
    airdrop = bot.orchestrator.strategies[2]

    assert BURN_ADDRESS in airdrop.excluded_wallets
    assert "ExcludedWallet111" in airdrop.excluded_wallets
    assert str(bot.bonding_curve.address) in airdrop.excluded_wallets
    assert str(bot.wallets.burn_wallet.pubkey()) in airdrop.excluded_wallets


def test_invalid_token_address(config):
    with pytest.raises(InvalidConfigurationError):
        FeeBot(config.model_copy(update={"token_address": "not-a-mint"}))


def test_missing_treasury(config):
    with pytest.raises(InvalidConfigurationError):
        FeeBot(config.model_copy(update={"treasury_wallet_address": None}))
