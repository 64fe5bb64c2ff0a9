import os
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from feebot.errors import InvalidConfigurationError
from feebot.solana.models import LAMPORTS_PER_SOL, AllocationPercentages

# Load environment variables from .env file
load_dotenv()

# Pump.fun program accounts
PUMP_FUN_PROGRAM = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
PUMP_FUN_GLOBAL = "4wTV1YmiEkRvAtNtsSGPtUrqRYQMe5SKy2uB4Jjaxnjf"
PUMP_FUN_FEE_RECIPIENT = "CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM"
PUMP_FUN_EVENT_AUTHORITY = "Ce6TQqeHC9p8KetsN6JsjHK7UTZk7nasjjnr7XxXp9F1"
BONDING_CURVE_SEED = b"bonding-curve"

# Tokens sent here can never be moved again
BURN_ADDRESS = "1nc1nerator11111111111111111111111111111111"

# Kept on every wallet so it can still pay transaction fees
BALANCE_BUFFER_SOL = 0.01

# Pump Portal local-transaction API used to collect creator fees
PUMP_PORTAL_API_URL = os.getenv("PUMP_PORTAL_API_URL", "https://pumpportal.fun/api/trade-local")

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Validation constants
MIN_FEE_CHECK_INTERVAL_MS = 5000
MAX_SLIPPAGE_BPS = 10_000
AIRDROP_AMOUNT_WARNING_SOL = 1.0
AIRDROP_RECIPIENTS_WARNING = 500


def sol_to_lamports(amount: float) -> int:
    """Convert a SOL amount to the nearest whole lamport."""
    return int(round(amount * LAMPORTS_PER_SOL))


def lamports_to_sol(lamports: int) -> float:
    """Convert lamports to SOL."""
    return lamports / LAMPORTS_PER_SOL


class EngineConfig(BaseModel):
    """Validated runtime configuration for the fee engine."""

    model_config = ConfigDict(frozen=True)

    # RPC
    rpc_endpoint: str

    # Token
    token_address: str
    bonding_curve_address: Optional[str] = None
    associated_bonding_curve: Optional[str] = None

    # Wallets
    creator_private_key: str = Field(repr=False)
    volume_wallet_keys: List[str] = Field(default_factory=list, repr=False)
    burn_wallet_private_key: Optional[str] = Field(default=None, repr=False)
    treasury_wallet_address: Optional[str] = None

    # Fee collection
    minimum_claim_threshold: float = 0.01
    fee_check_interval_ms: int = 30_000
    claim_priority_fee: float = 0.0001
    allocation: AllocationPercentages = Field(
        default_factory=lambda: AllocationPercentages(volume=25, buyback=25, airdrop=25, treasury=25)
    )

    # Volume creation
    min_trade_amount: float = 0.001
    max_trade_amount: float = 0.05
    min_delay_seconds: float = 5
    max_delay_seconds: float = 30
    slippage_bps: int = 300

    # Buyback and burn
    max_burn_per_tx: int = 1_000_000_000

    # Airdrop
    min_holder_threshold: int = 1_000_000
    min_airdrop_amount: float = 0.001
    max_recipients_per_run: int = 100
    airdrop_excluded_wallets: List[str] = Field(default_factory=list)

    # Operational
    dry_run: bool = False
    health_check_interval: float = 300
    summary_interval: float = 3600

    @model_validator(mode="after")
    def _check_ranges(self) -> "EngineConfig":
        if not self.allocation.is_valid():
            raise InvalidConfigurationError(
                f"Distribution percentages must be non-negative and total 100, got {self.allocation.total()}"
            )
        if self.minimum_claim_threshold <= 0:
            raise InvalidConfigurationError("MINIMUM_CLAIM_THRESHOLD must be greater than 0")
        if self.fee_check_interval_ms < MIN_FEE_CHECK_INTERVAL_MS:
            raise InvalidConfigurationError(
                f"FEE_CHECK_INTERVAL must be at least {MIN_FEE_CHECK_INTERVAL_MS}ms"
            )
        if not 0 <= self.slippage_bps <= MAX_SLIPPAGE_BPS:
            raise InvalidConfigurationError("SLIPPAGE_BPS must be between 0 and 10000")
        if self.min_trade_amount <= 0 or self.max_trade_amount < self.min_trade_amount:
            raise InvalidConfigurationError("Trade amounts must satisfy 0 < MIN_TRADE_AMOUNT <= MAX_TRADE_AMOUNT")
        if self.min_delay_seconds < 0 or self.max_delay_seconds < self.min_delay_seconds:
            raise InvalidConfigurationError("Trade delays must satisfy 0 <= MIN_DELAY_SECONDS <= MAX_DELAY_SECONDS")
        if self.max_burn_per_tx <= 0:
            raise InvalidConfigurationError("MAX_BURN_PER_TX must be greater than 0")
        if self.min_holder_threshold <= 0:
            raise InvalidConfigurationError("MIN_HOLDER_THRESHOLD must be greater than 0")
        if self.min_airdrop_amount <= 0:
            raise InvalidConfigurationError("MIN_AIRDROP_AMOUNT must be greater than 0")
        if self.max_recipients_per_run <= 0:
            raise InvalidConfigurationError("MAX_RECIPIENTS_PER_RUN must be greater than 0")
        return self

    @property
    def fee_check_interval_seconds(self) -> float:
        return self.fee_check_interval_ms / 1000

    def effective_volume_keys(self) -> List[str]:
        return list(self.volume_wallet_keys) or [self.creator_private_key]

    def effective_burn_key(self) -> str:
        return self.burn_wallet_private_key or self.creator_private_key


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config() -> EngineConfig:
    """
    Build the engine configuration from environment variables.

    Returns:
        Validated EngineConfig

    Raises:
        InvalidConfigurationError: If a required variable is missing or a value is out of range
    """
    required = ["RPC_ENDPOINT", "CREATOR_PRIVATE_KEY", "TOKEN_ADDRESS"]
    missing = [name for name in required if not os.getenv(name)]
    if missing:
        raise InvalidConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    try:
        config = EngineConfig(
            rpc_endpoint=os.getenv("RPC_ENDPOINT"),
            token_address=os.getenv("TOKEN_ADDRESS"),
            bonding_curve_address=os.getenv("BONDING_CURVE_ADDRESS") or None,
            associated_bonding_curve=os.getenv("ASSOCIATED_BONDING_CURVE") or None,
            creator_private_key=os.getenv("CREATOR_PRIVATE_KEY"),
            volume_wallet_keys=_split_list(os.getenv("VOLUME_WALLET_KEYS")),
            burn_wallet_private_key=os.getenv("BURN_WALLET_PRIVATE_KEY") or None,
            treasury_wallet_address=os.getenv("TREASURY_WALLET_ADDRESS") or None,
            minimum_claim_threshold=os.getenv("MINIMUM_CLAIM_THRESHOLD", "0.01"),
            fee_check_interval_ms=os.getenv("FEE_CHECK_INTERVAL", "30000"),
            claim_priority_fee=os.getenv("CLAIM_PRIORITY_FEE", "0.0001"),
            allocation=AllocationPercentages(
                volume=os.getenv("VOLUME_PERCENT", "25"),
                buyback=os.getenv("BUYBACK_PERCENT", "25"),
                airdrop=os.getenv("AIRDROP_PERCENT", "25"),
                treasury=os.getenv("TREASURY_PERCENT", "25"),
            ),
            min_trade_amount=os.getenv("MIN_TRADE_AMOUNT", "0.001"),
            max_trade_amount=os.getenv("MAX_TRADE_AMOUNT", "0.05"),
            min_delay_seconds=os.getenv("MIN_DELAY_SECONDS", "5"),
            max_delay_seconds=os.getenv("MAX_DELAY_SECONDS", "30"),
            slippage_bps=os.getenv("SLIPPAGE_BPS", "300"),
            max_burn_per_tx=os.getenv("MAX_BURN_PER_TX", "1000000000"),
            min_holder_threshold=os.getenv("MIN_HOLDER_THRESHOLD", "1000000"),
            min_airdrop_amount=os.getenv("MIN_AIRDROP_AMOUNT", "0.001"),
            max_recipients_per_run=os.getenv("MAX_RECIPIENTS_PER_RUN", "100"),
            airdrop_excluded_wallets=_split_list(os.getenv("AIRDROP_EXCLUDED_WALLETS")),
            dry_run=os.getenv("DRY_RUN", "false").strip().lower() == "true",
            health_check_interval=os.getenv("HEALTH_CHECK_INTERVAL", "300"),
            summary_interval=os.getenv("SUMMARY_INTERVAL", "3600"),
        )
    except ValidationError as e:
        raise InvalidConfigurationError(f"Invalid configuration: {e}") from e

    if config.min_airdrop_amount > AIRDROP_AMOUNT_WARNING_SOL:
        logger.warning(f"MIN_AIRDROP_AMOUNT is unusually high ({config.min_airdrop_amount} SOL)")
    if config.max_recipients_per_run > AIRDROP_RECIPIENTS_WARNING:
        logger.warning(
            f"MAX_RECIPIENTS_PER_RUN is very high ({config.max_recipients_per_run}), airdrops may be slow"
        )
    if not config.bonding_curve_address or not config.associated_bonding_curve:
        logger.info("Bonding curve addresses not set, they will be derived from the token mint")

    logger.info(
        "Configuration loaded",
        extra={
            "token_address": config.token_address,
            "dry_run": config.dry_run,
            "volume_wallets": len(config.effective_volume_keys()),
        }
    )

    return config
