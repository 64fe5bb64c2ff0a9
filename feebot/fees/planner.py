"""
Allocation of claimed fees across the four strategies.
"""

import math
from fractions import Fraction
from typing import Optional, Protocol

from loguru import logger

from feebot.config import sol_to_lamports
from feebot.errors import InvalidConfigurationError
from feebot.solana.models import AllocationPercentages, AllocationPlan


class AllocationProvider(Protocol):
    """
    External source of per-cycle percentages.

    Returning None keeps the static configuration for the cycle.
    """

    async def propose(self, total_amount: float) -> Optional[AllocationPercentages]:
        ...


def validate_percentages(percentages: AllocationPercentages):
    """
    Raises:
        InvalidConfigurationError: If a percentage is negative or they do not total 100
    """
    if not percentages.is_valid():
        raise InvalidConfigurationError(
            f"Allocation percentages must be non-negative and total 100, got "
            f"volume={percentages.volume} buyback={percentages.buyback} "
            f"airdrop={percentages.airdrop} treasury={percentages.treasury} (total {percentages.total()})"
        )


def percent_of(lamports: int, percent: float) -> int:
    """Exact floor of percent% of lamports."""
    return math.floor(lamports * Fraction(percent) / 100)


class AllocationPlanner:
    """
    Splits a claimed amount into volume, buyback, airdrop and treasury shares.
    """

    def __init__(self, percentages: AllocationPercentages):
        """
        Initialize the planner.

        Args:
            percentages: Static allocation used whenever no valid override is supplied

        Raises:
            InvalidConfigurationError: If the percentages are invalid
        """
        validate_percentages(percentages)
        self.percentages = percentages

    def resolve(self, override: Optional[AllocationPercentages] = None) -> AllocationPercentages:
        """Percentages to use for one cycle: a valid override, else the static set."""
        if override is None:
            return self.percentages

        try:
            validate_percentages(override)
        except InvalidConfigurationError as e:
            logger.warning(f"Ignoring allocation override, using static configuration: {str(e)}")
            return self.percentages

        return override

    def plan(self, total_amount: float, override: Optional[AllocationPercentages] = None) -> AllocationPlan:
        """
        Split total_amount.

        The split is done in whole lamports. Volume, buyback and airdrop are
        rounded down and treasury receives the remainder, so the four shares
        always add back up to the claimed lamports.

        Args:
            total_amount: Claimed amount in SOL
            override: Optional per-cycle percentages

        Returns:
            AllocationPlan
        """
        if total_amount < 0:
            raise ValueError(f"Cannot plan a negative amount: {total_amount}")

        percentages = self.resolve(override)
        total_lamports = sol_to_lamports(total_amount)

        remaining = total_lamports
        split = []
        for percent in (percentages.volume, percentages.buyback, percentages.airdrop):
            share = min(remaining, percent_of(total_lamports, percent))
            split.append(share)
            remaining -= share
        volume, buyback, airdrop = split

        plan = AllocationPlan(
            total_lamports=total_lamports,
            volume_lamports=volume,
            buyback_lamports=buyback,
            airdrop_lamports=airdrop,
            treasury_lamports=remaining,
            percentages=percentages,
            override_applied=percentages is not self.percentages,
        )

        logger.info(
            f"Allocation plan for {plan.total_amount:.9f} SOL: volume={plan.volume:.9f} buyback={plan.buyback:.9f} "
            f"airdrop={plan.airdrop:.9f} treasury={plan.treasury:.9f}"
        )

        return plan
