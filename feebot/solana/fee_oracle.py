"""
Priority fee estimation for Solana.
"""

from typing import Deque, List, Optional
from collections import deque
from loguru import logger

from feebot.errors import NetworkError, RpcError
from feebot.solana.models import FeeEstimate


class FeeOracle:
    """
    Estimates compute unit prices from recent prioritization fees and detects fee spikes.
    """

    # Spike detection threshold (multiplier of average)
    SPIKE_THRESHOLD = 1.5
    # Number of recent fee estimates to keep
    HISTORY_SIZE = 20
    # Bounds for the compute unit price, in micro-lamports
    MIN_PRIORITY_FEE = 1_000
    MAX_PRIORITY_FEE = 100_000
    DEFAULT_PRIORITY_FEE = 1_000
    # Percentile of recent fees to pay
    FEE_PERCENTILE = 0.75

    def __init__(self, ledger):
        """
        Initialize the fee oracle.

        Args:
            ledger: LedgerClient used to read recent prioritization fees
        """
        self.ledger = ledger

        # Queue to store recent fee estimates
        self.fee_history: Deque[int] = deque(maxlen=self.HISTORY_SIZE)
        self.fee_history.append(self.DEFAULT_PRIORITY_FEE)

        self._latest: Optional[FeeEstimate] = None

    @classmethod
    def select_fee(cls, recent_fees: List[int]) -> int:
        """
        Pick the compute unit price to pay from a list of recent fees.

        Zero fees are ignored. The 75th percentile is clamped to
        [MIN_PRIORITY_FEE, MAX_PRIORITY_FEE]; without data the default is used.
        """
        fees = sorted(f for f in recent_fees if f > 0)
        if not fees:
            return cls.DEFAULT_PRIORITY_FEE

        index = min(len(fees) - 1, int(len(fees) * cls.FEE_PERCENTILE))
        return max(cls.MIN_PRIORITY_FEE, min(cls.MAX_PRIORITY_FEE, fees[index]))

    async def get_current_fee_estimate(self) -> FeeEstimate:
        """
        Gets the current priority fee estimate.

        Returns:
            FeeEstimate with the compute unit price in micro-lamports
        """
        try:
            recent_fees = await self.ledger.get_recent_prioritization_fees()
            current_fee = self.select_fee(recent_fees)
        except (NetworkError, RpcError) as e:
            logger.warning(f"Error getting priority fees, using default: {str(e)}")
            current_fee = self.DEFAULT_PRIORITY_FEE

        # Calculate average and detect spike
        average_fee = sum(self.fee_history) / len(self.fee_history)
        is_spike = current_fee > (average_fee * self.SPIKE_THRESHOLD)

        if is_spike:
            logger.warning(f"Priority fee spike detected: Current={current_fee}, Avg={average_fee:.0f}")

        # Add to history
        self.fee_history.append(current_fee)

        self._latest = FeeEstimate(micro_lamports=current_fee, is_spike=is_spike)

        logger.debug(
            f"Current priority fee: {current_fee} micro-lamports (spike: {is_spike})",
            extra={"fee": current_fee, "is_spike": is_spike}
        )

        return self._latest

    @property
    def latest(self) -> Optional[FeeEstimate]:
        return self._latest
