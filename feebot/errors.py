"""
Error taxonomy for the fee engine.

Every error raised by engine code derives from FeeEngineError so the
orchestrator and strategy boundaries can record failures by kind.
"""

from typing import Optional


class FeeEngineError(Exception):
    """Base exception for fee engine errors."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidConfigurationError(FeeEngineError):
    """Bad percentages, non-positive thresholds or missing settings. Fatal at startup."""
    pass


class AccountNotFoundError(FeeEngineError):
    """A ledger account does not exist (yet)."""

    def __init__(self, address: str):
        super().__init__(f"Account not found: {address}")
        self.address = address


class InsufficientBalanceError(FeeEngineError):
    """A wallet cannot cover the amount an operation needs."""

    def __init__(self, wallet: str, required: float, available: float):
        super().__init__(
            f"Insufficient balance in {wallet}: need {required:.6f} SOL, have {available:.6f} SOL"
        )
        self.wallet = wallet
        self.required = required
        self.available = available


class NetworkError(FeeEngineError):
    """Transport-level failure talking to the RPC node."""
    pass


class RpcError(FeeEngineError):
    """The RPC node answered with an error."""
    pass


class TransactionFailedError(FeeEngineError):
    """A submission ended without a confirmed, successful transaction."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class MalformedAccountError(FeeEngineError):
    """Account data does not match the expected binary layout."""
    pass


class BondingCurveCompleteError(FeeEngineError):
    """The bonding curve has graduated and no longer accepts buys."""
    pass


class ClaimError(FeeEngineError):
    """The creator fee claim endpoint returned an error."""
    pass
