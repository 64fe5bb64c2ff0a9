"""
Treasury: move the share to the operations wallet.
"""

from datetime import datetime
from typing import List, Optional

from loguru import logger
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from feebot.config import sol_to_lamports
from feebot.errors import InvalidConfigurationError
from feebot.events.event_system import TreasuryEvent
from feebot.solana.models import TreasuryRecord
from feebot.solana.token_program import create_sol_transfer_instruction
from feebot.strategies.base import BaseStrategy


class TreasuryStrategy(BaseStrategy):
    """Single SOL transfer to the treasury wallet."""

    name = "treasury"

    def __init__(self, context, ledger, submitter, payer: Keypair, treasury_address: Optional[str]):
        super().__init__(context, ledger, submitter)
        if not treasury_address:
            raise InvalidConfigurationError("TREASURY_WALLET_ADDRESS is not set")
        try:
            self.treasury = Pubkey.from_string(treasury_address)
        except ValueError as e:
            raise InvalidConfigurationError(f"Invalid TREASURY_WALLET_ADDRESS: {treasury_address}") from e
        self.payer = payer

    async def execute(self, amount: float) -> List[str]:
        await self.require_balance(self.payer, amount)

        instruction = create_sol_transfer_instruction(self.payer.pubkey(), self.treasury, sol_to_lamports(amount))
        signature = await self.submitter.submit([instruction], [self.payer], label="treasury transfer")

        stats = self.context.stats.treasury
        stats.total_transferred += amount
        stats.transfer_count += 1
        stats.last_transfer_time = datetime.now()
        stats.transfer_history.append(
            TreasuryRecord(amount=amount, destination=str(self.treasury), signature=signature)
        )

        logger.info(f"Sent {amount:.6f} SOL to treasury {self.treasury}: {signature}")
        await self.context.emit(TreasuryEvent(amount, signature))

        return [signature]
