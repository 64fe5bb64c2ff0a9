"""
Common strategy plumbing.
"""

from abc import ABC, abstractmethod
from typing import List

from loguru import logger
from solders.keypair import Keypair

from feebot.config import BALANCE_BUFFER_SOL, lamports_to_sol
from feebot.engine.context import EngineContext
from feebot.errors import FeeEngineError, InsufficientBalanceError
from feebot.solana.models import StrategyOutcome
from feebot.solana.tx_submitter import TransactionSubmitter


class BaseStrategy(ABC):
    """
    A destination for a share of the claimed fees.

    Subclasses implement execute(), which raises on failure. run() is the
    boundary the orchestrator calls: it never raises and reports failures as
    a StrategyOutcome carrying the error kind.
    """

    name = "strategy"

    def __init__(self, context: EngineContext, ledger, submitter: TransactionSubmitter):
        self.context = context
        self.ledger = ledger
        self.submitter = submitter

    @abstractmethod
    async def execute(self, amount: float) -> List[str]:
        """
        Spend amount SOL.

        Returns:
            Signatures of the transactions sent
        """

    async def run(self, amount: float) -> StrategyOutcome:
        logger.info(f"Running {self.name} strategy with {amount:.6f} SOL")

        try:
            signatures = await self.execute(amount)
        except FeeEngineError as e:
            logger.error(f"{self.name} strategy failed ({e.kind}): {str(e)}")
            return StrategyOutcome(
                strategy=self.name, amount=amount, success=False, error_kind=e.kind, error=str(e)
            )
        except Exception as e:
            logger.exception(f"{self.name} strategy raised an unexpected error: {str(e)}")
            return StrategyOutcome(
                strategy=self.name, amount=amount, success=False, error_kind="UnexpectedError", error=str(e)
            )

        return StrategyOutcome(strategy=self.name, amount=amount, success=True, signatures=signatures)

    async def require_balance(self, wallet: Keypair, amount: float) -> float:
        """
        Check that wallet holds amount plus the fee buffer.

        Skipped in dry-run mode.

        Returns:
            Wallet balance in SOL

        Raises:
            InsufficientBalanceError: If the wallet cannot cover it
        """
        if self.context.dry_run:
            return amount + BALANCE_BUFFER_SOL

        balance = lamports_to_sol(await self.ledger.get_balance(wallet.pubkey()))
        required = amount + BALANCE_BUFFER_SOL
        if balance < required:
            raise InsufficientBalanceError(str(wallet.pubkey()), required, balance)
        return balance
