"""
Binary layouts read from and written to the ledger.

Bonding curve account (little-endian, no padding):

    offset  size  field
    0       8     account discriminator (opaque)
    8       8     virtual_token_reserves (u64)
    16      8     virtual_sol_reserves (u64)
    24      8     real_token_reserves (u64)
    32      8     real_sol_reserves (u64)
    40      8     token_total_supply (u64)
    48      1     complete (bool, any non-zero byte is true)

Newer curves append more fields after offset 49; they are ignored.
"""

import struct

from solders.pubkey import Pubkey

from feebot.errors import MalformedAccountError
from feebot.solana.models import ReserveState, TokenAccountBalance

# sha256("account:BondingCurve")[:8]
BONDING_CURVE_DISCRIMINATOR = bytes([23, 183, 248, 55, 96, 216, 172, 96])

# sha256("global:buy")[:8]
BUY_INSTRUCTION_DISCRIMINATOR = bytes([102, 6, 61, 18, 1, 218, 235, 234])

RESERVE_LAYOUT = struct.Struct("<8s5QB")
RESERVE_LAYOUT_SIZE = RESERVE_LAYOUT.size  # 49

# SPL token account: mint, owner, amount
TOKEN_ACCOUNT_LAYOUT = struct.Struct("<32s32sQ")
TOKEN_ACCOUNT_SIZE = 165

BUY_DATA_LAYOUT = struct.Struct("<8sQQ")


def decode_reserve_state(data: bytes) -> ReserveState:
    """
    Decode bonding curve account data.

    Args:
        data: Raw account data

    Returns:
        ReserveState snapshot

    Raises:
        MalformedAccountError: If the data is shorter than the fixed layout
    """
    if data is None or len(data) < RESERVE_LAYOUT_SIZE:
        length = 0 if data is None else len(data)
        raise MalformedAccountError(
            f"Bonding curve data too short: {length} bytes, expected at least {RESERVE_LAYOUT_SIZE}"
        )

    (
        _discriminator,
        virtual_token_reserves,
        virtual_sol_reserves,
        real_token_reserves,
        real_sol_reserves,
        token_total_supply,
        complete,
    ) = RESERVE_LAYOUT.unpack_from(data, 0)

    return ReserveState(
        virtual_token_reserves=virtual_token_reserves,
        virtual_sol_reserves=virtual_sol_reserves,
        real_token_reserves=real_token_reserves,
        real_sol_reserves=real_sol_reserves,
        token_total_supply=token_total_supply,
        complete=complete != 0,
    )


def encode_reserve_state(state: ReserveState, discriminator: bytes = BONDING_CURVE_DISCRIMINATOR) -> bytes:
    """Inverse of decode_reserve_state."""
    if len(discriminator) != 8:
        raise ValueError("Discriminator must be exactly 8 bytes")

    return RESERVE_LAYOUT.pack(
        discriminator,
        state.virtual_token_reserves,
        state.virtual_sol_reserves,
        state.real_token_reserves,
        state.real_sol_reserves,
        state.token_total_supply,
        1 if state.complete else 0,
    )


def decode_token_account(address: str, data: bytes) -> TokenAccountBalance:
    """
    Decode the mint, owner and amount of an SPL token account.

    Raises:
        MalformedAccountError: If the data is too short
    """
    if data is None or len(data) < TOKEN_ACCOUNT_LAYOUT.size:
        raise MalformedAccountError(f"Token account {address} data too short")

    mint, owner, amount = TOKEN_ACCOUNT_LAYOUT.unpack_from(data, 0)
    return TokenAccountBalance(
        address=address,
        mint=str(Pubkey.from_bytes(mint)),
        owner=str(Pubkey.from_bytes(owner)),
        amount=amount,
    )


def encode_token_account(mint: str, owner: str, amount: int) -> bytes:
    """Build SPL token account data (used for fixtures and simulations)."""
    body = TOKEN_ACCOUNT_LAYOUT.pack(
        bytes(Pubkey.from_string(mint)),
        bytes(Pubkey.from_string(owner)),
        amount,
    )
    return body + bytes(TOKEN_ACCOUNT_SIZE - len(body))


def encode_buy_instruction_data(token_amount: int, max_sol_cost: int) -> bytes:
    """Data for the bonding curve buy instruction."""
    return BUY_DATA_LAYOUT.pack(BUY_INSTRUCTION_DISCRIMINATOR, token_amount, max_sol_cost)
