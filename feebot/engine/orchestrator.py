"""
Claim and distribution cycle driver.

This module sequences fee discovery, claiming, planning and the four
strategies, and keeps the settlement audit trail.
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import List, Optional

from loguru import logger
from solders.pubkey import Pubkey

from feebot.config import lamports_to_sol
from feebot.engine.context import EngineContext
from feebot.errors import FeeEngineError
from feebot.events.event_system import ErrorEvent, FeeCollectedEvent
from feebot.fees.calculator import FeeAvailabilityCalculator
from feebot.fees.claimer import FeeClaimer
from feebot.fees.planner import AllocationPlanner, AllocationProvider
from feebot.solana.models import AllocationPercentages, FeeClaim, SettlementRecord, StrategyOutcome
from feebot.strategies.base import BaseStrategy

STRATEGY_ORDER = ("volume", "buyback", "airdrop", "treasury")


class EngineState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    CLAIMING = "claiming"
    DISTRIBUTING = "distributing"
    PAUSED = "paused"
    STOPPED = "stopped"


class DistributionOrchestrator:
    """
    Runs claim, plan, execute and record cycles on a timer.

    Only one cycle runs at a time; a cycle triggered while another is in
    progress is skipped, not queued. Strategies run one after another in
    STRATEGY_ORDER and a failing strategy never stops the ones after it.
    """

    # Seconds to wait for a claim to be reflected in the creator balance
    CLAIM_SETTLE_DELAY = 2.0

    def __init__(self,
                 context: EngineContext,
                 ledger,
                 calculator: FeeAvailabilityCalculator,
                 claimer: FeeClaimer,
                 planner: AllocationPlanner,
                 strategies: List[BaseStrategy],
                 creator: Pubkey,
                 check_interval: float,
                 minimum_claim_threshold: float,
                 allocation_provider: Optional[AllocationProvider] = None,
                 claim_settle_delay: float = CLAIM_SETTLE_DELAY):
        """
        Initialize the orchestrator.

        Args:
            context: EngineContext shared with the strategies
            ledger: LedgerClient
            calculator: FeeAvailabilityCalculator for the token's curve
            claimer: FeeClaimer collecting the creator fees
            planner: AllocationPlanner with the static percentages
            strategies: One strategy per name in STRATEGY_ORDER
            creator: Creator wallet that receives claimed fees
            check_interval: Seconds between cycles
            minimum_claim_threshold: Smallest claimed amount in SOL that is distributed
            allocation_provider: Optional source of per-cycle percentages
            claim_settle_delay: Seconds to wait before re-reading the creator balance after a claim
        """
        by_name = {strategy.name: strategy for strategy in strategies}
        missing = [name for name in STRATEGY_ORDER if name not in by_name]
        if missing:
            raise ValueError(f"Missing strategies: {', '.join(missing)}")

        self.context = context
        self.ledger = ledger
        self.calculator = calculator
        self.claimer = claimer
        self.planner = planner
        self.strategies = [by_name[name] for name in STRATEGY_ORDER]
        self.creator = creator
        self.check_interval = check_interval
        self.minimum_claim_threshold = minimum_claim_threshold
        self.allocation_provider = allocation_provider
        self.claim_settle_delay = claim_settle_delay

        self.state = EngineState.IDLE
        self.is_processing = False
        self._paused = False
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None

    # Lifecycle

    async def start(self):
        """Start the periodic cycle timer."""
        if self.state == EngineState.STOPPED:
            raise RuntimeError("Orchestrator has been stopped")
        if self._timer_task:
            return

        self._timer_task = asyncio.create_task(self._timer_loop())
        logger.info(f"Fee distribution started, checking every {self.check_interval}s")

    async def stop(self):
        """
        Stop the timer and wait for an in-flight cycle to record its settlement.
        """
        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        if self._cycle_task and not self._cycle_task.done():
            logger.info("Waiting for the current cycle to finish")
            await asyncio.wait([self._cycle_task])

        self.state = EngineState.STOPPED
        logger.info("Fee distribution stopped")

    def pause(self):
        """Suspend the timer; claim history is kept."""
        if self.state == EngineState.STOPPED:
            return
        self._paused = True
        if not self.is_processing:
            self.state = EngineState.PAUSED
        logger.info("Fee distribution paused")

    def resume(self):
        if self.state == EngineState.STOPPED:
            return
        self._paused = False
        if not self.is_processing:
            self.state = EngineState.IDLE
        logger.info("Fee distribution resumed")

    @property
    def paused(self) -> bool:
        return self._paused

    async def _timer_loop(self):
        while True:
            if not self._paused:
                self.trigger()
            await asyncio.sleep(self.check_interval)

    def trigger(self) -> Optional[asyncio.Task]:
        """Start a cycle in the background unless one is already running."""
        if self.is_processing or (self._cycle_task and not self._cycle_task.done()):
            logger.debug("Previous cycle still running, skipping this tick")
            return None
        self._cycle_task = asyncio.create_task(self.run_cycle())
        return self._cycle_task

    def _settle_state(self):
        if self.state != EngineState.STOPPED:
            self.state = EngineState.PAUSED if self._paused else EngineState.IDLE

    # Cycle

    async def run_cycle(self) -> Optional[SettlementRecord]:
        """
        Check for fees and, if enough are claimable, claim and distribute them.

        Returns:
            SettlementRecord of the distribution, or None if nothing was distributed
            or a cycle was already running
        """
        if self.is_processing:
            logger.debug("Cycle already in progress, skipping")
            return None
        if self.state == EngineState.STOPPED:
            return None

        self.is_processing = True
        try:
            claimed = await self._check_and_claim()
            if claimed is None:
                return None
            return await self.distribute(claimed)
        except FeeEngineError as e:
            logger.error(f"Fee cycle failed ({e.kind}): {str(e)}")
            await self.context.emit(ErrorEvent(str(e), {"phase": self.state.value, "kind": e.kind}))
            return None
        except Exception as e:
            logger.exception(f"Unexpected error in fee cycle: {str(e)}")
            await self.context.emit(ErrorEvent(str(e), {"phase": self.state.value, "kind": "UnexpectedError"}))
            return None
        finally:
            self.is_processing = False
            self._settle_state()

    async def _check_and_claim(self) -> Optional[float]:
        self.state = EngineState.CHECKING
        availability = await self.calculator.check()
        if not availability.should_claim:
            logger.debug(f"Below claim threshold ({availability.available_sol:.6f} SOL)")
            return None

        self.state = EngineState.CLAIMING
        balance_before = await self.ledger.get_balance(self.creator)
        signature = await self.claimer.claim()
        if signature is None:
            return None

        if self.context.dry_run:
            claimed = availability.available_sol
        else:
            await asyncio.sleep(self.claim_settle_delay)
            balance_after = await self.ledger.get_balance(self.creator)
            claimed = lamports_to_sol(balance_after - balance_before)

        if claimed <= 0:
            logger.warning(f"Claim {signature} did not increase the creator balance")
            return None

        self._record_claim(FeeClaim(amount=claimed, signature=signature))
        await self.context.emit(FeeCollectedEvent(claimed, signature))

        if claimed < self.minimum_claim_threshold:
            logger.info(f"Claimed {claimed:.6f} SOL is below threshold, leaving it for the next distribution")
            return None

        return claimed

    def _record_claim(self, claim: FeeClaim):
        fees = self.context.stats.fees
        fees.total_collected += claim.amount
        fees.claim_count += 1
        fees.last_claim_amount = claim.amount
        fees.last_claim_time = claim.timestamp
        fees.claim_history.append(claim)
        logger.info(f"Collected {claim.amount:.6f} SOL in fees: {claim.signature}")

    async def _resolve_override(self, total_amount: float) -> Optional[AllocationPercentages]:
        if not self.allocation_provider:
            return None
        try:
            return await self.allocation_provider.propose(total_amount)
        except Exception as e:
            logger.warning(f"Allocation provider failed, using static configuration: {str(e)}")
            return None

    async def distribute(self, total_amount: float) -> SettlementRecord:
        """
        Split total_amount and run every strategy on its share.

        Returns:
            SettlementRecord, appended to the settlement history
        """
        self.state = EngineState.DISTRIBUTING
        plan = self.planner.plan(total_amount, await self._resolve_override(total_amount))
        shares = plan.shares()

        outcomes: List[StrategyOutcome] = []
        errors: List[str] = []

        for strategy in self.strategies:
            share = shares[strategy.name]
            if share <= 0:
                logger.debug(f"Skipping {strategy.name}, nothing allocated")
                continue

            outcome = await strategy.run(share)
            outcomes.append(outcome)

            if not outcome.success:
                message = f"{strategy.name}: {outcome.error}"
                errors.append(message)
                await self.context.emit(
                    ErrorEvent(message, {"strategy": strategy.name, "kind": outcome.error_kind, "amount": share})
                )

        record = SettlementRecord(
            timestamp=datetime.now(),
            total_amount=plan.total_amount,
            volume=plan.volume,
            buyback=plan.buyback,
            airdrop=plan.airdrop,
            treasury=plan.treasury,
            success=not errors,
            errors=errors,
            outcomes=outcomes,
        )
        self.context.stats.fees.settlement_history.append(record)

        if not self.is_processing:
            self._settle_state()

        if record.success:
            logger.info(f"Distributed {total_amount:.6f} SOL across all strategies")
        else:
            logger.warning(f"Distribution of {total_amount:.6f} SOL completed with {len(errors)} errors")

        return record
