"""
Claimable fee discovery on the bonding curve.
"""

from typing import Optional

from loguru import logger
from pydantic import BaseModel

from feebot.config import lamports_to_sol
from feebot.errors import AccountNotFoundError
from feebot.solana.codec import decode_reserve_state
from feebot.solana.models import ReserveState


class FeeAvailability(BaseModel):
    """Result of one fee check."""
    available_sol: float
    should_claim: bool
    account_balance: int = 0
    reserves: Optional[ReserveState] = None


def reserved_lamports(reserves: ReserveState) -> int:
    """
    Lamports on the curve account that belong to traders, not to the creator.

    A curve that reports no real reserves yet is measured against its
    virtual SOL reserves instead.
    """
    if reserves.real_sol_reserves > 0:
        return reserves.real_sol_reserves
    return reserves.virtual_sol_reserves


def calculate_available_fees(account_balance: int, reserves: ReserveState) -> int:
    """Claimable lamports: account balance above the reserved floor, never negative."""
    return max(0, account_balance - reserved_lamports(reserves))


class FeeAvailabilityCalculator:
    """
    Computes how much creator fee is sitting on the bonding curve account.
    """

    def __init__(self, bonding_curve, minimum_claim_threshold: float):
        """
        Initialize the calculator.

        Args:
            bonding_curve: BondingCurve whose account is inspected
            minimum_claim_threshold: Smallest amount in SOL worth claiming
        """
        self.bonding_curve = bonding_curve
        self.minimum_claim_threshold = minimum_claim_threshold

    def evaluate(self, account_balance: int, reserves: ReserveState) -> FeeAvailability:
        available = lamports_to_sol(calculate_available_fees(account_balance, reserves))
        return FeeAvailability(
            available_sol=available,
            should_claim=available >= self.minimum_claim_threshold,
            account_balance=account_balance,
            reserves=reserves,
        )

    async def check(self) -> FeeAvailability:
        """
        Read the curve account and compute the claimable amount.

        A missing account counts as nothing to claim.

        Raises:
            MalformedAccountError: If the curve data cannot be decoded
        """
        try:
            account = await self.bonding_curve.ledger.get_account(self.bonding_curve.address)
        except AccountNotFoundError as e:
            logger.info(f"No fees available: {str(e)}")
            return FeeAvailability(available_sol=0.0, should_claim=False)

        reserves = decode_reserve_state(account.data)
        availability = self.evaluate(account.lamports, reserves)

        logger.info(
            f"Available fees: {availability.available_sol:.6f} SOL "
            f"(threshold {self.minimum_claim_threshold} SOL, curve progress {reserves.progress_percent():.1f}%)",
            extra={"available": availability.available_sol, "should_claim": availability.should_claim}
        )

        return availability
