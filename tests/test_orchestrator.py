"""
Test Suite: Distribution Orchestrator
=====================================
Verifies the claim, plan, execute and record cycle.

Run: pytest tests/test_orchestrator.py -v
"""

import asyncio
from typing import List, Optional

import pytest
from solders.keypair import Keypair

from feebot.engine.context import EngineContext
from feebot.engine.orchestrator import STRATEGY_ORDER, DistributionOrchestrator, EngineState
from feebot.errors import ClaimError, InsufficientBalanceError
from feebot.fees.calculator import FeeAvailability
from feebot.fees.planner import AllocationPlanner
from feebot.solana.models import AllocationPercentages
from feebot.strategies.base import BaseStrategy


class RecordingStrategy(BaseStrategy):
    """Records the amounts it receives; optionally fails or blocks."""

    def __init__(self, context, name: str, calls: list, error: Exception = None, gate: asyncio.Event = None):
        super().__init__(context, ledger=None, submitter=None)
        self.name = name
        self.calls = calls
        self.error = error
        self.gate = gate
        self.started = asyncio.Event()

    async def execute(self, amount: float) -> List[str]:
        self.calls.append((self.name, amount))
        self.started.set()
        if self.gate:
            await self.gate.wait()
        if self.error:
            raise self.error
        return [f"{self.name}-sig"]


class StubCalculator:
    def __init__(self, available: float, threshold: float = 0.01):
        self.available = available
        self.threshold = threshold
        self.checks = 0

    async def check(self) -> FeeAvailability:
        self.checks += 1
        return FeeAvailability(available_sol=self.available, should_claim=self.available >= self.threshold)


class StubClaimer:
    def __init__(self, signature: Optional[str] = "claim-sig", error: Exception = None):
        self.signature = signature
        self.error = error
        self.claims = 0

    async def claim(self) -> Optional[str]:
        self.claims += 1
        if self.error:
            raise self.error
        return self.signature


class StubProvider:
    def __init__(self, percentages=None, error: Exception = None):
        self.percentages = percentages
        self.error = error

    async def propose(self, total_amount: float):
        if self.error:
            raise self.error
        return self.percentages


@pytest.fixture
def creator():
    return Keypair().pubkey()


@pytest.fixture
def calls():
    return []


def build(context, ledger, creator, calls, available=1.0, claimer=None, failing=None,
          provider=None, gate=None, check_interval=60):
    strategies = [
        RecordingStrategy(
            context, name, calls,
            error=(failing or {}).get(name),
            gate=gate if name == "treasury" else None,
        )
        for name in reversed(STRATEGY_ORDER)
    ]
    orchestrator = DistributionOrchestrator(
        context=context,
        ledger=ledger,
        calculator=StubCalculator(available),
        claimer=claimer or StubClaimer(),
        planner=AllocationPlanner(AllocationPercentages(volume=25, buyback=25, airdrop=25, treasury=25)),
        strategies=strategies,
        creator=creator,
        check_interval=check_interval,
        minimum_claim_threshold=0.01,
        allocation_provider=provider,
        claim_settle_delay=0,
    )
    return orchestrator


class TestCycle:

    @pytest.mark.asyncio
    async def test_full_cycle(self, context, ledger, creator, calls):
        ledger.set_balance(creator, 1_000_000_000, 2_000_000_000)
        orchestrator = build(context, ledger, creator, calls)

        record = await orchestrator.run_cycle()

        assert record.success is True
        assert record.total_amount == 1.0
        assert calls == [("volume", 0.25), ("buyback", 0.25), ("airdrop", 0.25), ("treasury", 0.25)]
        assert context.stats.fees.claim_count == 1
        assert context.stats.fees.total_collected == 1.0
        assert context.stats.fees.settlement_history == [record]
        assert orchestrator.state == EngineState.IDLE
        assert orchestrator.is_processing is False

    @pytest.mark.asyncio
    async def test_failing_strategy_does_not_stop_the_others(self, context, ledger, creator, calls):
        ledger.set_balance(creator, 1_000_000_000, 2_000_000_000)
        failing = {"buyback": InsufficientBalanceError("burn-wallet", 0.26, 0.0)}
        orchestrator = build(context, ledger, creator, calls, failing=failing)

        record = await orchestrator.run_cycle()

        assert [name for name, _ in calls] == list(STRATEGY_ORDER)
        assert record.success is False
        assert len(record.errors) == 1
        assert record.errors[0].startswith("buyback: Insufficient balance")
        assert [o.success for o in record.outcomes] == [True, False, True, True]
        assert record.outcomes[1].error_kind == "InsufficientBalanceError"

    @pytest.mark.asyncio
    async def test_below_threshold_skips_claim(self, context, ledger, creator, calls):
        claimer = StubClaimer()
        orchestrator = build(context, ledger, creator, calls, available=0.001, claimer=claimer)

        assert await orchestrator.run_cycle() is None
        assert claimer.claims == 0
        assert calls == []

    @pytest.mark.asyncio
    async def test_nothing_to_claim(self, context, ledger, creator, calls):
        orchestrator = build(context, ledger, creator, calls, claimer=StubClaimer(signature=None))

        assert await orchestrator.run_cycle() is None
        assert calls == []
        assert context.stats.fees.claim_count == 0

    @pytest.mark.asyncio
    async def test_small_claim_recorded_but_not_distributed(self, context, ledger, creator, calls):
        ledger.set_balance(creator, 1_000_000_000, 1_005_000_000)
        orchestrator = build(context, ledger, creator, calls)

        assert await orchestrator.run_cycle() is None
        assert context.stats.fees.claim_count == 1
        assert context.stats.fees.last_claim_amount == pytest.approx(0.005)
        assert calls == []

    @pytest.mark.asyncio
    async def test_claim_without_balance_change(self, context, ledger, creator, calls):
        ledger.set_balance(creator, 1_000_000_000)
        orchestrator = build(context, ledger, creator, calls)

        assert await orchestrator.run_cycle() is None
        assert context.stats.fees.claim_count == 0

    @pytest.mark.asyncio
    async def test_dry_run_uses_available_amount(self, ledger, creator, calls):
        context = EngineContext(dry_run=True)
        orchestrator = build(context, ledger, creator, calls, available=0.4)

        record = await orchestrator.run_cycle()

        assert record.total_amount == 0.4
        assert context.stats.fees.claim_history[0].amount == 0.4

    @pytest.mark.asyncio
    async def test_single_flight(self, context, ledger, creator, calls):
        orchestrator = build(context, ledger, creator, calls)
        orchestrator.is_processing = True

        assert await orchestrator.run_cycle() is None
        assert orchestrator.trigger() is None
        assert orchestrator.calculator.checks == 0

    @pytest.mark.asyncio
    async def test_claim_error_publishes_error_event(self, context, ledger, creator, calls):
        errors = []

        async def on_error(event):
            errors.append(event)

        await context.events.subscribe("error", on_error)
        await context.events.start()
        orchestrator = build(context, ledger, creator, calls, claimer=StubClaimer(error=ClaimError("HTTP 500")))

        assert await orchestrator.run_cycle() is None
        await context.events.stop()

        assert len(errors) == 1
        assert errors[0].data["message"] == "HTTP 500"
        assert errors[0].data["context"]["kind"] == "ClaimError"
        assert errors[0].data["context"]["phase"] == "claiming"
        assert orchestrator.state == EngineState.IDLE

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, context, ledger, creator, calls):
        orchestrator = build(context, ledger, creator, calls, claimer=StubClaimer(error=KeyError("boom")))

        assert await orchestrator.run_cycle() is None
        assert orchestrator.is_processing is False


class TestAllocation:

    @pytest.mark.asyncio
    async def test_override_applied_and_zero_shares_skipped(self, context, ledger, creator, calls):
        provider = StubProvider(AllocationPercentages(volume=0, buyback=0, airdrop=50, treasury=50))
        orchestrator = build(context, ledger, creator, calls, provider=provider)

        record = await orchestrator.distribute(2.0)

        assert calls == [("airdrop", 1.0), ("treasury", 1.0)]
        assert record.volume == 0
        assert [o.strategy for o in record.outcomes] == ["airdrop", "treasury"]

    @pytest.mark.asyncio
    async def test_failing_provider_falls_back(self, context, ledger, creator, calls):
        provider = StubProvider(error=RuntimeError("model offline"))
        orchestrator = build(context, ledger, creator, calls, provider=provider)

        await orchestrator.distribute(1.0)

        assert calls == [("volume", 0.25), ("buyback", 0.25), ("airdrop", 0.25), ("treasury", 0.25)]

    @pytest.mark.asyncio
    async def test_invalid_override_falls_back(self, context, ledger, creator, calls):
        provider = StubProvider(AllocationPercentages(volume=80, buyback=80, airdrop=0, treasury=0))
        orchestrator = build(context, ledger, creator, calls, provider=provider)

        await orchestrator.distribute(1.0)

        assert len(calls) == 4

    def test_missing_strategy(self, context, ledger, creator):
        with pytest.raises(ValueError):
            DistributionOrchestrator(
                context=context,
                ledger=ledger,
                calculator=StubCalculator(1.0),
                claimer=StubClaimer(),
                planner=AllocationPlanner(AllocationPercentages(volume=25, buyback=25, airdrop=25, treasury=25)),
                strategies=[RecordingStrategy(context, "volume", [])],
                creator=creator,
                check_interval=60,
                minimum_claim_threshold=0.01,
            )


class TestLifecycle:

    def test_pause_and_resume(self, context, ledger, creator, calls):
        orchestrator = build(context, ledger, creator, calls)

        orchestrator.pause()
        assert orchestrator.paused is True
        assert orchestrator.state == EngineState.PAUSED

        orchestrator.resume()
        assert orchestrator.paused is False
        assert orchestrator.state == EngineState.IDLE

    @pytest.mark.asyncio
    async def test_timer_triggers_cycle(self, context, ledger, creator, calls):
        ledger.set_balance(creator, 1_000_000_000, 2_000_000_000)
        orchestrator = build(context, ledger, creator, calls)

        await orchestrator.start()
        treasury = orchestrator.strategies[-1]
        await asyncio.wait_for(treasury.started.wait(), timeout=5)
        await orchestrator.stop()

        assert len(context.stats.fees.settlement_history) == 1
        assert orchestrator.state == EngineState.STOPPED

    @pytest.mark.asyncio
    async def test_paused_timer_does_not_cycle(self, context, ledger, creator, calls):
        orchestrator = build(context, ledger, creator, calls, check_interval=0.01)
        orchestrator.pause()

        await orchestrator.start()
        await asyncio.sleep(0.05)
        await orchestrator.stop()

        assert orchestrator.calculator.checks == 0

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_cycle(self, context, ledger, creator, calls):
        ledger.set_balance(creator, 1_000_000_000, 2_000_000_000)
        gate = asyncio.Event()
        orchestrator = build(context, ledger, creator, calls, gate=gate)

        orchestrator.trigger()
        treasury = orchestrator.strategies[-1]
        await asyncio.wait_for(treasury.started.wait(), timeout=5)

        stopping = asyncio.create_task(orchestrator.stop())
        await asyncio.sleep(0.01)
        assert not stopping.done()
        assert context.stats.fees.settlement_history == []

        gate.set()
        await asyncio.wait_for(stopping, timeout=5)

        assert len(context.stats.fees.settlement_history) == 1
        assert orchestrator.state == EngineState.STOPPED

    @pytest.mark.asyncio
    async def test_back_to_back_triggers_start_one_cycle(self, context, ledger, creator, calls):
        ledger.set_balance(creator, 1_000_000_000, 2_000_000_000)
        gate = asyncio.Event()
        orchestrator = build(context, ledger, creator, calls, gate=gate)

        first = orchestrator.trigger()
        second = orchestrator.trigger()

        assert first is not None
        assert second is None

        treasury = orchestrator.strategies[-1]
        await asyncio.wait_for(treasury.started.wait(), timeout=5)
        stopping = asyncio.create_task(orchestrator.stop())
        await asyncio.sleep(0.01)
        assert not stopping.done()

        gate.set()
        await asyncio.wait_for(stopping, timeout=5)

        assert first.done()
        assert len(context.stats.fees.settlement_history) == 1
        assert orchestrator.state == EngineState.STOPPED

    @pytest.mark.asyncio
    async def test_no_cycles_after_stop(self, context, ledger, creator, calls):
        orchestrator = build(context, ledger, creator, calls)
        await orchestrator.stop()

        assert await orchestrator.run_cycle() is None
        with pytest.raises(RuntimeError):
            await orchestrator.start()
