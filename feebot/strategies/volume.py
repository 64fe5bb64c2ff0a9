"""
Market-making volume: split an allocation into randomized buys.
"""

import asyncio
import random
from datetime import datetime
from typing import List, Optional, Sequence

from loguru import logger
from solders.keypair import Keypair

from feebot.config import lamports_to_sol, sol_to_lamports
from feebot.errors import BondingCurveCompleteError, FeeEngineError, TransactionFailedError
from feebot.events.event_system import VolumeEvent
from feebot.solana.bonding_curve import BondingCurve, calculate_expected_tokens, max_sol_cost
from feebot.solana.models import TradeRecord
from feebot.solana.token_program import ensure_token_account_instructions
from feebot.strategies.base import BaseStrategy


def split_into_trades(
    total_lamports: int,
    min_trade_lamports: int,
    max_trade_lamports: int,
    rng: Optional[random.Random] = None
) -> List[int]:
    """
    Partition total_lamports into random trade sizes.

    Sizes are drawn from [min, max] until the remainder is no larger than
    min. The remainder becomes a final trade if it is at least half of min
    (or if it is the only trade), otherwise it is added to the last trade.
    The result always sums to total_lamports.
    """
    if min_trade_lamports <= 0 or max_trade_lamports < min_trade_lamports:
        raise ValueError("Trade bounds must satisfy 0 < min <= max")

    rng = rng or random.Random()
    trades: List[int] = []
    remaining = total_lamports

    while remaining > min_trade_lamports:
        amount = rng.randint(min_trade_lamports, min(max_trade_lamports, remaining))
        trades.append(amount)
        remaining -= amount

    if remaining > 0:
        if remaining * 2 >= min_trade_lamports or not trades:
            trades.append(remaining)
        else:
            trades[-1] += remaining

    return trades


class VolumeStrategy(BaseStrategy):
    """
    Spends its share as a sequence of small buys from rotating wallets.
    """

    name = "volume"

    def __init__(self,
                 context,
                 ledger,
                 submitter,
                 bonding_curve: BondingCurve,
                 wallets: Sequence[Keypair],
                 min_trade_amount: float,
                 max_trade_amount: float,
                 min_delay_seconds: float,
                 max_delay_seconds: float,
                 slippage_bps: int,
                 rng: Optional[random.Random] = None):
        """
        Initialize the volume strategy.

        Args:
            context: EngineContext
            ledger: LedgerClient
            submitter: TransactionSubmitter
            bonding_curve: Curve the buys go through
            wallets: Wallets used in rotation
            min_trade_amount: Smallest trade in SOL
            max_trade_amount: Largest trade in SOL
            min_delay_seconds: Shortest pause between trades
            max_delay_seconds: Longest pause between trades
            slippage_bps: Slippage tolerance in basis points
            rng: Random source, for reproducible runs
        """
        super().__init__(context, ledger, submitter)
        if not wallets:
            raise ValueError("VolumeStrategy needs at least one wallet")

        self.bonding_curve = bonding_curve
        self.wallets = list(wallets)
        self.min_trade_amount = min_trade_amount
        self.max_trade_amount = max_trade_amount
        self.min_delay_seconds = min_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.slippage_bps = slippage_bps
        self.rng = rng or random.Random()

    async def execute(self, amount: float) -> List[str]:
        trades = split_into_trades(
            sol_to_lamports(amount),
            sol_to_lamports(self.min_trade_amount),
            sol_to_lamports(self.max_trade_amount),
            self.rng,
        )

        logger.info(f"Creating volume with {len(trades)} trades totalling {amount:.6f} SOL")

        signatures = []
        errors = []

        for i, lamports in enumerate(trades):
            wallet = self.wallets[i % len(self.wallets)]
            record = await self._execute_trade(wallet, lamports)

            if record.success:
                signatures.append(record.signature)
            else:
                errors.append(record.error)

            if i < len(trades) - 1:
                delay = self.rng.uniform(self.min_delay_seconds, self.max_delay_seconds)
                logger.debug(f"Waiting {delay:.1f}s before next trade")
                await asyncio.sleep(delay)

        logger.info(f"Volume creation complete: {len(signatures)}/{len(trades)} trades succeeded")

        if trades and not signatures:
            raise TransactionFailedError(f"All {len(trades)} volume trades failed, last error: {errors[-1]}")

        return signatures

    async def _execute_trade(self, wallet: Keypair, lamports: int) -> TradeRecord:
        sol_amount = lamports_to_sol(lamports)
        stats = self.context.stats.volume
        record = TradeRecord(wallet=str(wallet.pubkey()), sol_amount=sol_amount)

        try:
            await self.require_balance(wallet, sol_amount)

            # Reserves move with every trade, so the estimate is recomputed per buy
            reserves = await self.bonding_curve.fetch_state()
            if reserves.complete:
                raise BondingCurveCompleteError("Bonding curve has graduated, buys are closed")

            record.expected_tokens = calculate_expected_tokens(lamports, reserves)
            max_cost = max_sol_cost(lamports, self.slippage_bps)

            instructions = await ensure_token_account_instructions(
                self.ledger, wallet.pubkey(), wallet.pubkey(), self.bonding_curve.mint
            )
            instructions.append(
                self.bonding_curve.build_buy_instruction(wallet.pubkey(), int(record.expected_tokens), max_cost)
            )

            record.signature = await self.submitter.submit(instructions, [wallet], label="volume trade")
            record.success = True

        except FeeEngineError as e:
            record.error = str(e)
            logger.error(f"Volume trade of {sol_amount:.6f} SOL from {wallet.pubkey()} failed: {record.error}")

        stats.total_trades += 1
        stats.trade_history.append(record)
        if record.success:
            stats.successful_trades += 1
            stats.total_volume += sol_amount
            stats.last_trade_time = datetime.now()
            logger.info(f"Volume trade: {sol_amount:.6f} SOL, ~{record.expected_tokens:.0f} tokens, {record.signature}")
            await self.context.emit(VolumeEvent(sol_amount, record.signature))
        else:
            stats.failed_trades += 1

        return record
