#!/usr/bin/env python
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from loguru import logger
from solders.pubkey import Pubkey

from feebot.config import BURN_ADDRESS, LOG_LEVEL, EngineConfig, lamports_to_sol, load_config
from feebot.engine.context import EngineContext
from feebot.engine.orchestrator import DistributionOrchestrator
from feebot.errors import InvalidConfigurationError
from feebot.events.event_system import ALL_EVENTS, Event
from feebot.fees.calculator import FeeAvailabilityCalculator
from feebot.fees.claimer import PumpPortalClaimer
from feebot.fees.planner import AllocationPlanner
from feebot.reporting import generate_summary
from feebot.solana.bonding_curve import BondingCurve
from feebot.solana.fee_oracle import FeeOracle
from feebot.solana.ledger_client import LedgerClient
from feebot.solana.tx_submitter import TransactionSubmitter
from feebot.solana.wallet_manager import WalletManager
from feebot.strategies.airdrop import AirdropStrategy, generate_airdrop_report
from feebot.strategies.buyback import BuybackStrategy, generate_burn_report
from feebot.strategies.treasury import TreasuryStrategy
from feebot.strategies.volume import VolumeStrategy


def setup_logging(level: str = LOG_LEVEL):
    """Configure structured logging with loguru."""
    logger.remove()  # Remove default handler
    logger.add(
        "logs/feebot_{time}.log",
        rotation="1 day",
        retention="14 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message} | {extra}",
        serialize=True,  # JSON formatting for structured logs
    )

    # Also send logs to stdout
    logger.add(
        sys.stdout,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
    )

    # Redirect solana-py, httpx and requests loggers to loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""
    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


async def log_event(event: Event):
    """Write every domain event to the log."""
    logger.info(f"Event {event.event_type}: {event.data}")


class FeeBot:
    """
    Wires the ledger, strategies and orchestrator together and runs them.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self.context = EngineContext(dry_run=config.dry_run)

        self.ledger = LedgerClient(config.rpc_endpoint)
        self.wallets = WalletManager(
            config.creator_private_key,
            config.effective_volume_keys(),
            config.effective_burn_key(),
        )
        self.fee_oracle = FeeOracle(self.ledger)
        self.submitter = TransactionSubmitter(self.ledger, fee_oracle=self.fee_oracle, dry_run=config.dry_run)

        try:
            mint = Pubkey.from_string(config.token_address)
            curve_address = Pubkey.from_string(config.bonding_curve_address) if config.bonding_curve_address else None
            associated_address = (
                Pubkey.from_string(config.associated_bonding_curve) if config.associated_bonding_curve else None
            )
        except ValueError as e:
            raise InvalidConfigurationError(f"Invalid token or bonding curve address: {str(e)}") from e

        self.bonding_curve = BondingCurve(self.ledger, mint, curve_address, associated_address)

        self.orchestrator = DistributionOrchestrator(
            context=self.context,
            ledger=self.ledger,
            calculator=FeeAvailabilityCalculator(self.bonding_curve, config.minimum_claim_threshold),
            claimer=PumpPortalClaimer(self.wallets.creator, self.submitter, config.claim_priority_fee),
            planner=AllocationPlanner(config.allocation),
            strategies=self._build_strategies(),
            creator=self.wallets.creator.pubkey(),
            check_interval=config.fee_check_interval_seconds,
            minimum_claim_threshold=config.minimum_claim_threshold,
        )

        self._background: List[asyncio.Task] = []
        self._stop_event: Optional[asyncio.Event] = None

    def _build_strategies(self):
        config = self.config
        excluded = [
            BURN_ADDRESS,
            str(self.wallets.burn_wallet.pubkey()),
            str(self.bonding_curve.address),
            str(self.bonding_curve.associated_address),
            *config.airdrop_excluded_wallets,
        ]

        return [
            VolumeStrategy(
                self.context, self.ledger, self.submitter,
                bonding_curve=self.bonding_curve,
                wallets=self.wallets.volume_wallets,
                min_trade_amount=config.min_trade_amount,
                max_trade_amount=config.max_trade_amount,
                min_delay_seconds=config.min_delay_seconds,
                max_delay_seconds=config.max_delay_seconds,
                slippage_bps=config.slippage_bps,
            ),
            BuybackStrategy(
                self.context, self.ledger, self.submitter,
                bonding_curve=self.bonding_curve,
                burn_wallet=self.wallets.burn_wallet,
                max_burn_per_tx=config.max_burn_per_tx,
                slippage_bps=config.slippage_bps,
            ),
            AirdropStrategy(
                self.context, self.ledger, self.submitter,
                payer=self.wallets.creator,
                mint=self.bonding_curve.mint,
                min_holder_threshold=config.min_holder_threshold,
                min_airdrop_amount=config.min_airdrop_amount,
                max_recipients_per_run=config.max_recipients_per_run,
                excluded_wallets=excluded,
            ),
            TreasuryStrategy(
                self.context, self.ledger, self.submitter,
                payer=self.wallets.creator,
                treasury_address=config.treasury_wallet_address,
            ),
        ]

    async def start(self):
        """Check the RPC connection, then start the event system and the cycle timer."""
        if not await self.ledger.check_health():
            raise ConnectionError(f"RPC endpoint {self.config.rpc_endpoint} is not healthy")

        for wallet in self.wallets.all_wallets():
            balance = await self.ledger.get_balance(wallet.pubkey())
            logger.info(f"Wallet {wallet.pubkey()}: {lamports_to_sol(balance):.4f} SOL")

        if self.config.dry_run:
            logger.warning("DRY RUN mode: no transactions will be sent")

        await self.context.events.subscribe(ALL_EVENTS, log_event)
        await self.context.events.start()
        await self.orchestrator.start()

        self._background = [
            asyncio.create_task(self._health_loop()),
            asyncio.create_task(self._summary_loop()),
        ]

    async def stop(self):
        """Stop cycling, wait for the current cycle, and log the final reports."""
        for task in self._background:
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)

        await self.orchestrator.stop()
        await self.context.events.stop()

        logger.info(generate_summary(self.context.stats, "FINAL SUMMARY"))
        logger.info(generate_burn_report(self.context.stats.burn))
        logger.info(generate_airdrop_report(self.context.stats.airdrop))

        await self.ledger.close()

    async def _health_loop(self):
        while True:
            await asyncio.sleep(self.config.health_check_interval)
            if not await self.ledger.check_health():
                logger.warning("RPC connection unhealthy")

    async def _summary_loop(self):
        while True:
            await asyncio.sleep(self.config.summary_interval)
            logger.info(generate_summary(self.context.stats, "HOURLY SUMMARY"))

    async def run_forever(self):
        """Run until SIGINT or SIGTERM."""
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._stop_event.set)
            except NotImplementedError:
                # Signal handlers are unavailable on some platforms (Windows)
                pass

        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            logger.info("Shutting down")
            await self.stop()


async def main():
    """Initialize and start the fee engine."""
    # Setup logging first for observability
    setup_logging()

    logger.info("Starting fee distribution engine")

    try:
        config = load_config()
        bot = FeeBot(config)
    except InvalidConfigurationError as e:
        logger.error(f"Configuration error: {str(e)}")
        sys.exit(1)

    try:
        await bot.run_forever()
    except ConnectionError as e:
        logger.error(f"Startup failed: {str(e)}")
        await bot.ledger.close()
        sys.exit(1)


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == '__main__':
    run()
