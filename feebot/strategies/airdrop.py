"""
Holder airdrops: distribute SOL to token holders pro rata.
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Sequence

from loguru import logger
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from feebot.config import BURN_ADDRESS, lamports_to_sol, sol_to_lamports
from feebot.errors import FeeEngineError, TransactionFailedError
from feebot.events.event_system import AirdropEvent
from feebot.solana.models import (
    AirdropAllocation,
    AirdropRecord,
    AirdropStats,
    HolderSnapshot,
    TokenAccountBalance,
)
from feebot.solana.token_program import create_sol_transfer_instruction
from feebot.strategies.base import BaseStrategy

BATCH_SIZE = 5
BATCH_DELAY_SECONDS = 0.5


def aggregate_holders(accounts: Iterable[TokenAccountBalance]) -> List[HolderSnapshot]:
    """Sum token balances per owning wallet."""
    balances: Dict[str, int] = defaultdict(int)
    for account in accounts:
        if account.amount > 0:
            balances[account.owner] += account.amount
    return [HolderSnapshot(wallet=wallet, token_balance=balance) for wallet, balance in balances.items()]


def budget_lamports(total_sol: float) -> int:
    """Whole lamports available for an airdrop, never worth more than total_sol."""
    lamports = sol_to_lamports(total_sol)
    if lamports_to_sol(lamports) > total_sol:
        lamports -= 1
    return max(0, lamports)


def plan_airdrop(
    holders: Sequence[HolderSnapshot],
    total_sol: float,
    exclusions: Iterable[str] = (),
    min_holder_threshold: int = 0,
    min_airdrop_amount: float = 0,
    max_recipients: int = None
) -> List[AirdropAllocation]:
    """
    Compute each holder's share of total_sol in whole lamports.

    Excluded wallets and wallets below min_holder_threshold do not qualify.
    Shares below min_airdrop_amount are dropped without being handed to
    other holders. Shares are rounded down, so the result never adds up to
    more than total_sol.
    Recipients are ordered by amount, largest first, and cut at
    max_recipients.
    """
    excluded = set(exclusions)
    qualified = [
        h for h in holders
        if h.wallet not in excluded and h.token_balance >= min_holder_threshold and h.token_balance > 0
    ]

    total_balance = sum(h.token_balance for h in qualified)
    budget = budget_lamports(total_sol)
    if total_balance == 0 or budget <= 0:
        return []

    allocations = []
    for holder in qualified:
        lamports = holder.token_balance * budget // total_balance
        if lamports_to_sol(lamports) < min_airdrop_amount:
            continue
        allocations.append(
            AirdropAllocation(
                wallet=holder.wallet,
                proportion=holder.token_balance / total_balance,
                lamports=lamports,
            )
        )

    allocations.sort(key=lambda a: a.lamports, reverse=True)
    if max_recipients is not None:
        allocations = allocations[:max_recipients]

    return allocations


class AirdropStrategy(BaseStrategy):
    """
    Pays its share to qualifying token holders in proportion to their holdings.
    """

    name = "airdrop"

    def __init__(self,
                 context,
                 ledger,
                 submitter,
                 payer: Keypair,
                 mint: Pubkey,
                 min_holder_threshold: int,
                 min_airdrop_amount: float,
                 max_recipients_per_run: int,
                 excluded_wallets: Iterable[str] = (),
                 batch_size: int = BATCH_SIZE,
                 batch_delay: float = BATCH_DELAY_SECONDS):
        """
        Initialize the airdrop strategy.

        Args:
            context: EngineContext
            ledger: LedgerClient
            submitter: TransactionSubmitter
            payer: Wallet the SOL is sent from
            mint: Token whose holders are paid
            min_holder_threshold: Minimum token balance (base units) to qualify
            min_airdrop_amount: Smallest payment in SOL
            max_recipients_per_run: Cap on recipients per run
            excluded_wallets: Wallets that never receive airdrops
            batch_size: Transfers per transaction
            batch_delay: Pause between batches in seconds
        """
        super().__init__(context, ledger, submitter)
        self.payer = payer
        self.mint = mint
        self.min_holder_threshold = min_holder_threshold
        self.min_airdrop_amount = min_airdrop_amount
        self.max_recipients_per_run = max_recipients_per_run
        self.excluded_wallets = {BURN_ADDRESS, *excluded_wallets}
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    async def get_holders(self) -> List[HolderSnapshot]:
        """Current holders of the mint, one entry per wallet."""
        accounts = await self.ledger.get_token_accounts(self.mint)
        holders = aggregate_holders(accounts)
        logger.info(f"Found {len(holders)} holders across {len(accounts)} token accounts")
        return holders

    async def execute(self, amount: float) -> List[str]:
        holders = await self.get_holders()
        allocations = plan_airdrop(
            holders,
            amount,
            exclusions=self.excluded_wallets,
            min_holder_threshold=self.min_holder_threshold,
            min_airdrop_amount=self.min_airdrop_amount,
            max_recipients=self.max_recipients_per_run,
        )

        if not allocations:
            logger.info("No eligible airdrop recipients")
            return []

        planned_total = lamports_to_sol(sum(a.lamports for a in allocations))
        await self.require_balance(self.payer, planned_total)

        logger.info(f"Airdropping {planned_total:.6f} SOL to {len(allocations)} holders")

        signatures: List[str] = []
        paid: List[AirdropAllocation] = []
        failed = 0

        for start in range(0, len(allocations), self.batch_size):
            batch = allocations[start:start + self.batch_size]

            try:
                signature = await self._send(batch)
                signatures.append(signature)
                paid.extend(batch)
            except FeeEngineError as e:
                logger.warning(f"Airdrop batch of {len(batch)} failed, sending individually: {str(e)}")
                for allocation in batch:
                    try:
                        signatures.append(await self._send([allocation]))
                        paid.append(allocation)
                    except FeeEngineError as single_error:
                        failed += 1
                        logger.error(f"Airdrop to {allocation.wallet} failed: {str(single_error)}")

            if start + self.batch_size < len(allocations):
                await asyncio.sleep(self.batch_delay)

        if not paid:
            raise TransactionFailedError(f"All {len(allocations)} airdrop transfers failed")

        distributed = lamports_to_sol(sum(a.lamports for a in paid))
        stats = self.context.stats.airdrop
        stats.total_distributed += distributed
        stats.airdrop_count += 1
        stats.unique_recipients.update(a.wallet for a in paid)
        stats.last_airdrop_time = datetime.now()
        stats.airdrop_history.append(
            AirdropRecord(total_sol=distributed, recipients=len(paid), failed=failed, signatures=signatures)
        )

        logger.info(f"Airdrop complete: {distributed:.6f} SOL to {len(paid)} holders, {failed} failed")
        await self.context.emit(AirdropEvent(distributed, len(paid)))

        return signatures

    async def _send(self, allocations: Sequence[AirdropAllocation]) -> str:
        instructions = [
            create_sol_transfer_instruction(self.payer.pubkey(), Pubkey.from_string(allocation.wallet), allocation.lamports)
            for allocation in allocations
        ]
        return await self.submitter.submit(instructions, [self.payer], label=f"airdrop x{len(allocations)}")


def generate_airdrop_report(stats: AirdropStats) -> str:
    """Human readable summary of all airdrops."""
    lines = [
        "AIRDROP REPORT",
        f"Total distributed: {stats.total_distributed:.4f} SOL",
        f"Airdrops: {stats.airdrop_count}",
        f"Unique recipients: {len(stats.unique_recipients)}",
    ]
    if stats.airdrop_count:
        lines.append(f"Average per airdrop: {stats.total_distributed / stats.airdrop_count:.4f} SOL")
    if stats.last_airdrop_time:
        lines.append(f"Last airdrop: {stats.last_airdrop_time.isoformat(timespec='seconds')}")
    for record in stats.airdrop_history[-5:]:
        lines.append(f"  {record.total_sol:.4f} SOL to {record.recipients} holders ({record.failed} failed)")
    return "\n".join(lines)
