"""
Buyback and burn: buy tokens on the curve and send them to the incinerator.
"""

from datetime import datetime
from typing import List

from loguru import logger
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from feebot.config import BURN_ADDRESS, sol_to_lamports
from feebot.errors import BondingCurveCompleteError, TransactionFailedError
from feebot.events.event_system import BurnEvent
from feebot.solana.bonding_curve import BondingCurve, calculate_expected_tokens, max_sol_cost
from feebot.solana.models import BurnRecord, BurnStats
from feebot.solana.token_program import (
    associated_token_address,
    create_token_transfer_instruction,
    ensure_token_account_instructions,
)
from feebot.strategies.base import BaseStrategy

INCINERATOR = Pubkey.from_string(BURN_ADDRESS)


class BuybackStrategy(BaseStrategy):
    """
    Buys tokens with its share and moves them to an address nobody controls.
    """

    name = "buyback"

    def __init__(self,
                 context,
                 ledger,
                 submitter,
                 bonding_curve: BondingCurve,
                 burn_wallet: Keypair,
                 max_burn_per_tx: int,
                 slippage_bps: int):
        """
        Initialize the buyback strategy.

        Args:
            context: EngineContext
            ledger: LedgerClient
            submitter: TransactionSubmitter
            bonding_curve: Curve the buyback goes through
            burn_wallet: Wallet that buys and then burns
            max_burn_per_tx: Largest token amount (base units) burned in one transaction
            slippage_bps: Slippage tolerance in basis points
        """
        super().__init__(context, ledger, submitter)
        self.bonding_curve = bonding_curve
        self.burn_wallet = burn_wallet
        self.max_burn_per_tx = max_burn_per_tx
        self.slippage_bps = slippage_bps

    async def execute(self, amount: float) -> List[str]:
        wallet = self.burn_wallet.pubkey()
        mint = self.bonding_curve.mint
        lamports = sol_to_lamports(amount)

        await self.require_balance(self.burn_wallet, amount)

        reserves = await self.bonding_curve.fetch_state()
        if reserves.complete:
            raise BondingCurveCompleteError("Bonding curve has graduated, buyback is unavailable")

        expected_tokens = int(calculate_expected_tokens(lamports, reserves))
        if expected_tokens > self.max_burn_per_tx:
            logger.warning(
                f"Expected {expected_tokens} tokens exceeds burn cap {self.max_burn_per_tx}, "
                f"excess stays in the burn wallet"
            )

        wallet_ata = associated_token_address(wallet, mint)
        balance_before = 0 if self.context.dry_run else await self.ledger.get_token_balance(wallet_ata)

        # Step 1: buy
        instructions = await ensure_token_account_instructions(self.ledger, wallet, wallet, mint)
        instructions.append(
            self.bonding_curve.build_buy_instruction(
                wallet, expected_tokens, max_sol_cost(lamports, self.slippage_bps)
            )
        )
        buy_signature = await self.submitter.submit(instructions, [self.burn_wallet], label="buyback")

        if self.context.dry_run:
            received = expected_tokens
        else:
            received = await self.ledger.get_token_balance(wallet_ata) - balance_before

        if received <= 0:
            raise TransactionFailedError(f"Buyback {buy_signature} did not increase the token balance")

        tokens_to_burn = min(received, self.max_burn_per_tx)
        logger.info(f"Bought {received} tokens for {amount:.6f} SOL, burning {tokens_to_burn}")

        # Step 2: burn by transfer to the incinerator
        burn_instructions = await ensure_token_account_instructions(self.ledger, wallet, INCINERATOR, mint)
        burn_instructions.append(
            create_token_transfer_instruction(
                wallet_ata, associated_token_address(INCINERATOR, mint), wallet, tokens_to_burn
            )
        )
        burn_signature = await self.submitter.submit(burn_instructions, [self.burn_wallet], label="burn")

        stats = self.context.stats.burn
        stats.total_burned += tokens_to_burn
        stats.total_sol_spent += amount
        stats.burn_count += 1
        stats.last_burn_time = datetime.now()
        stats.burn_history.append(
            BurnRecord(
                sol_spent=amount,
                tokens_burned=tokens_to_burn,
                buy_signature=buy_signature,
                burn_signature=burn_signature,
            )
        )

        logger.info(
            f"Burned {tokens_to_burn} tokens: {burn_signature}",
            extra={"tokens": tokens_to_burn, "sol": amount}
        )
        await self.context.emit(BurnEvent(tokens_to_burn, amount, burn_signature))

        return [buy_signature, burn_signature]


def generate_burn_report(stats: BurnStats) -> str:
    """Human readable summary of all burns."""
    lines = [
        "BUYBACK & BURN REPORT",
        f"Total burned: {stats.total_burned:,} tokens",
        f"SOL spent: {stats.total_sol_spent:.4f} SOL",
        f"Burn count: {stats.burn_count}",
    ]
    if stats.burn_count:
        lines.append(f"Average per burn: {stats.total_sol_spent / stats.burn_count:.4f} SOL")
    if stats.last_burn_time:
        lines.append(f"Last burn: {stats.last_burn_time.isoformat(timespec='seconds')}")
    for record in stats.burn_history[-5:]:
        lines.append(f"  {record.tokens_burned:,} tokens for {record.sol_spent:.4f} SOL ({record.burn_signature})")
    return "\n".join(lines)
