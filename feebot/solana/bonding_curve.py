"""
Bonding curve accounts, pricing and the buy instruction.
"""

import math
from typing import Tuple

from loguru import logger
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT

from feebot.config import (
    BONDING_CURVE_SEED,
    PUMP_FUN_EVENT_AUTHORITY,
    PUMP_FUN_FEE_RECIPIENT,
    PUMP_FUN_GLOBAL,
    PUMP_FUN_PROGRAM,
)
from feebot.solana.codec import decode_reserve_state, encode_buy_instruction_data
from feebot.solana.models import ReserveState
from feebot.solana.token_program import TOKEN_PROGRAM_ID, associated_token_address

PROGRAM_ID = Pubkey.from_string(PUMP_FUN_PROGRAM)
GLOBAL_ACCOUNT = Pubkey.from_string(PUMP_FUN_GLOBAL)
FEE_RECIPIENT = Pubkey.from_string(PUMP_FUN_FEE_RECIPIENT)
EVENT_AUTHORITY = Pubkey.from_string(PUMP_FUN_EVENT_AUTHORITY)


def derive_bonding_curve_addresses(mint: Pubkey) -> Tuple[Pubkey, Pubkey]:
    """
    Derive the bonding curve PDA of a mint and the curve's token account.

    Returns:
        (bonding_curve, associated_bonding_curve)
    """
    bonding_curve, _bump = Pubkey.find_program_address([BONDING_CURVE_SEED, bytes(mint)], PROGRAM_ID)
    return bonding_curve, associated_token_address(bonding_curve, mint)


def calculate_expected_tokens(sol_in_lamports: int, reserves: ReserveState) -> float:
    """
    Constant-product estimate of tokens received for a buy.

    tokens_out = sol_in * virtual_token_reserves / (virtual_sol_reserves + sol_in)
    """
    if sol_in_lamports <= 0:
        return 0.0
    return (sol_in_lamports * reserves.virtual_token_reserves) / (
        reserves.virtual_sol_reserves + sol_in_lamports
    )


def max_sol_cost(lamports: int, slippage_bps: int) -> int:
    """Upper bound on lamports spent for a buy under the slippage tolerance."""
    return math.floor(lamports * (1 + slippage_bps / 10_000))


class BondingCurve:
    """
    A token's bonding curve on the ledger.
    """

    def __init__(self, ledger, mint: Pubkey, bonding_curve: Pubkey = None, associated_bonding_curve: Pubkey = None):
        """
        Initialize the bonding curve.

        Args:
            ledger: LedgerClient instance
            mint: Token mint address
            bonding_curve: Curve account. If None, derived from the mint.
            associated_bonding_curve: Curve token account. If None, derived from the mint.
        """
        self.ledger = ledger
        self.mint = mint

        derived_curve, derived_associated = derive_bonding_curve_addresses(mint)
        self.address = bonding_curve or derived_curve
        self.associated_address = associated_bonding_curve or derived_associated

        logger.debug(f"Bonding curve for {mint}: {self.address} (token account {self.associated_address})")

    async def fetch_state(self) -> ReserveState:
        """
        Read and decode the current reserves.

        Raises:
            AccountNotFoundError: If the curve account does not exist
            MalformedAccountError: If the account data cannot be decoded
        """
        account = await self.ledger.get_account(self.address)
        return decode_reserve_state(account.data)

    def build_buy_instruction(self, buyer: Pubkey, token_amount: int, max_cost_lamports: int) -> Instruction:
        """
        Build the buy instruction.

        Args:
            buyer: Signing wallet paying SOL and receiving tokens
            token_amount: Token base units to buy
            max_cost_lamports: Maximum lamports the buy may spend

        Returns:
            Buy instruction with the program's fixed account order
        """
        keys = [
            AccountMeta(pubkey=GLOBAL_ACCOUNT, is_signer=False, is_writable=False),
            AccountMeta(pubkey=FEE_RECIPIENT, is_signer=False, is_writable=True),
            AccountMeta(pubkey=self.mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=self.address, is_signer=False, is_writable=True),
            AccountMeta(pubkey=self.associated_address, is_signer=False, is_writable=True),
            AccountMeta(pubkey=associated_token_address(buyer, self.mint), is_signer=False, is_writable=True),
            AccountMeta(pubkey=buyer, is_signer=True, is_writable=True),
            AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=RENT, is_signer=False, is_writable=False),
            AccountMeta(pubkey=EVENT_AUTHORITY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        return Instruction(
            program_id=PROGRAM_ID,
            data=encode_buy_instruction_data(token_amount, max_cost_lamports),
            accounts=keys
        )
