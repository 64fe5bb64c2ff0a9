"""
Wallet loading for Solana.
"""

import json
from typing import List

import base58
from solders.keypair import Keypair
from loguru import logger

from feebot.errors import InvalidConfigurationError


def load_keypair(private_key: str) -> Keypair:
    """
    Load a keypair from a base58 secret key or a JSON byte array.

    Args:
        private_key: Secret key as base58 text or "[1,2,...]"

    Returns:
        Keypair

    Raises:
        InvalidConfigurationError: If the key cannot be decoded
    """
    value = private_key.strip()
    try:
        if value.startswith("["):
            key_bytes = bytes(json.loads(value))
        else:
            key_bytes = base58.b58decode(value)
        return Keypair.from_bytes(key_bytes)
    except ValueError as e:
        # json, base58 and solders all raise ValueError subclasses on bad input
        raise InvalidConfigurationError(f"Invalid private key: {str(e)}") from e


class WalletManager:
    """
    Holds the keypairs the engine signs with.
    """

    def __init__(self, creator_key: str, volume_keys: List[str], burn_key: str):
        """
        Initialize the wallet manager.

        Args:
            creator_key: Creator wallet secret; receives claimed fees and pays airdrops and treasury
            volume_keys: Secrets of the wallets that rotate through volume trades
            burn_key: Secret of the wallet that buys back and burns
        """
        self.creator = load_keypair(creator_key)
        self.volume_wallets = [load_keypair(key) for key in volume_keys] or [self.creator]
        self.burn_wallet = load_keypair(burn_key)

        logger.info(
            f"WalletManager loaded creator {self.creator.pubkey()} and {len(self.volume_wallets)} volume wallets",
            extra={"burn_wallet": str(self.burn_wallet.pubkey())}
        )

    def all_wallets(self) -> List[Keypair]:
        """Distinct keypairs, creator first."""
        seen = set()
        wallets = []
        for keypair in [self.creator, self.burn_wallet, *self.volume_wallets]:
            if keypair.pubkey() not in seen:
                seen.add(keypair.pubkey())
                wallets.append(keypair)
        return wallets
