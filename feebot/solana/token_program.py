"""
SPL Token and System program utilities.

This module builds the instructions the strategies compose into transactions:
associated token account creation, token transfers, SOL transfers and
compute unit pricing.
"""

from typing import List

from solders.compute_budget import set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.instructions import create_associated_token_account, get_associated_token_address
from loguru import logger

# SPL Token Program ID
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")

# SPL Token Program Instruction Codes
TRANSFER_INSTRUCTION = 3  # Token Program instruction index for transfer


def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Associated token account of owner for mint."""
    return get_associated_token_address(owner, mint)


async def ensure_token_account_instructions(
    ledger,
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey
) -> List[Instruction]:
    """
    Instructions needed so that owner's associated token account exists.

    Args:
        ledger: LedgerClient used to check for the account
        payer: Account paying rent for the new token account
        owner: Wallet owning the token account
        mint: Token mint address

    Returns:
        Empty list if the account exists, otherwise a single create instruction
    """
    ata = associated_token_address(owner, mint)
    if await ledger.account_exists(ata):
        return []

    logger.info(
        f"Token account {ata} for {owner} does not exist, adding create instruction",
        extra={"owner": str(owner), "token_mint": str(mint)}
    )
    return [create_associated_token_account(payer, owner, mint)]


def create_token_transfer_instruction(
    sender_token_account: Pubkey,
    recipient_token_account: Pubkey,
    owner: Pubkey,
    amount: int
) -> Instruction:
    """
    Create an SPL token transfer instruction.

    Args:
        sender_token_account: Sender's token account
        recipient_token_account: Recipient's token account
        owner: Owner of the sending token account
        amount: Amount to transfer in base units

    Returns:
        Instruction for the token transfer
    """
    keys = [
        AccountMeta(pubkey=sender_token_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=recipient_token_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=True, is_writable=False)
    ]

    data = bytes([TRANSFER_INSTRUCTION]) + amount.to_bytes(8, byteorder='little')

    return Instruction(
        program_id=TOKEN_PROGRAM_ID,
        data=data,
        accounts=keys
    )


def create_sol_transfer_instruction(sender: Pubkey, recipient: Pubkey, lamports: int) -> Instruction:
    """Native SOL transfer."""
    return transfer(
        TransferParams(
            from_pubkey=sender,
            to_pubkey=recipient,
            lamports=lamports
        )
    )


def create_priority_fee_instruction(micro_lamports: int) -> Instruction:
    """Compute unit price instruction."""
    return set_compute_unit_price(micro_lamports)
