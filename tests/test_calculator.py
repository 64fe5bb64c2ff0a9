"""
Test Suite: Fee Availability Calculator
=======================================
Verifies the claimable amount computed from the curve account.

Run: pytest tests/test_calculator.py -v
"""

import pytest
from solders.keypair import Keypair

from feebot.errors import MalformedAccountError
from feebot.fees.calculator import (
    FeeAvailabilityCalculator,
    calculate_available_fees,
    reserved_lamports,
)
from feebot.solana.bonding_curve import BondingCurve
from feebot.solana.models import ReserveState


def make_reserves(virtual_sol: int, real_sol: int) -> ReserveState:
    return ReserveState(
        virtual_token_reserves=1_000_000_000_000,
        virtual_sol_reserves=virtual_sol,
        real_token_reserves=800_000_000_000,
        real_sol_reserves=real_sol,
        token_total_supply=1_000_000_000_000,
    )


class TestAvailableFees:

    def test_balance_above_real_reserves(self):
        reserves = make_reserves(61_000_000_000, 31_000_000_000)
        assert calculate_available_fees(31_050_000_000, reserves) == 50_000_000

    def test_balance_below_reserves_is_zero(self):
        reserves = make_reserves(61_000_000_000, 31_000_000_000)
        assert calculate_available_fees(30_000_000_000, reserves) == 0

    def test_falls_back_to_virtual_reserves(self):
        reserves = make_reserves(30_000_000_000, 0)
        assert reserved_lamports(reserves) == 30_000_000_000
        assert calculate_available_fees(30_002_000_000, reserves) == 2_000_000

    def test_fresh_curve_scenario(self):
        """Virtual 31 SOL, no real reserves, 31.05 SOL on the account."""
        reserves = make_reserves(31_000_000_000, 0)
        assert calculate_available_fees(31_050_000_000, reserves) == 50_000_000

    def test_real_reserves_preferred(self):
        reserves = make_reserves(30_000_000_000, 5)
        assert reserved_lamports(reserves) == 5


class TestCalculator:

    def test_evaluate_scenario(self):
        """31.05 SOL on an account holding 31 SOL of reserves leaves 0.05 SOL."""
        calculator = FeeAvailabilityCalculator(bonding_curve=None, minimum_claim_threshold=0.01)
        result = calculator.evaluate(31_050_000_000, make_reserves(31_000_000_000, 31_000_000_000))

        assert result.available_sol == pytest.approx(0.05)
        assert result.should_claim is True

    def test_below_threshold(self):
        calculator = FeeAvailabilityCalculator(bonding_curve=None, minimum_claim_threshold=0.1)
        result = calculator.evaluate(31_050_000_000, make_reserves(31_000_000_000, 31_000_000_000))

        assert result.available_sol == pytest.approx(0.05)
        assert result.should_claim is False

    def test_exactly_at_threshold_claims(self):
        calculator = FeeAvailabilityCalculator(bonding_curve=None, minimum_claim_threshold=0.5)
        result = calculator.evaluate(1_500_000_000, make_reserves(30_000_000_000, 1_000_000_000))

        assert result.should_claim is True

    @pytest.mark.asyncio
    async def test_check_reads_curve(self, ledger):
        curve = BondingCurve(ledger, Keypair().pubkey())
        reserves = make_reserves(31_000_000_000, 31_000_000_000)
        ledger.set_reserves(curve.address, reserves, lamports=31_050_000_000)

        result = await FeeAvailabilityCalculator(curve, 0.01).check()

        assert result.available_sol == pytest.approx(0.05)
        assert result.should_claim is True
        assert result.account_balance == 31_050_000_000
        assert result.reserves == reserves

    @pytest.mark.asyncio
    async def test_missing_account_is_zero(self, ledger):
        curve = BondingCurve(ledger, Keypair().pubkey())

        result = await FeeAvailabilityCalculator(curve, 0.01).check()

        assert result.available_sol == 0
        assert result.should_claim is False

    @pytest.mark.asyncio
    async def test_malformed_account_raises(self, ledger):
        curve = BondingCurve(ledger, Keypair().pubkey())
        ledger.set_account(curve.address, 5_000_000_000, b"\x01\x02")

        with pytest.raises(MalformedAccountError):
            await FeeAvailabilityCalculator(curve, 0.01).check()
