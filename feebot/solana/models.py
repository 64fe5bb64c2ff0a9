"""
Models for fee discovery and settlement.
"""
from typing import Dict, List, Optional, Set
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

U64_MAX = 2 ** 64 - 1
LAMPORTS_PER_SOL = 1_000_000_000

# Bonding curve graduation parameters (lamports)
INITIAL_VIRTUAL_SOL_RESERVES = 30_000_000_000
GRADUATION_SOL_THRESHOLD = 85_000_000_000


class ReserveState(BaseModel):
    """Decoded snapshot of a bonding curve account."""
    model_config = ConfigDict(frozen=True)

    virtual_token_reserves: int = Field(ge=0, le=U64_MAX)
    virtual_sol_reserves: int = Field(ge=0, le=U64_MAX)
    real_token_reserves: int = Field(ge=0, le=U64_MAX)
    real_sol_reserves: int = Field(ge=0, le=U64_MAX)
    token_total_supply: int = Field(ge=0, le=U64_MAX)
    complete: bool = False

    def progress_percent(self) -> float:
        """Progress towards graduation, 0-100."""
        if self.complete:
            return 100.0
        raised = max(0, self.virtual_sol_reserves - INITIAL_VIRTUAL_SOL_RESERVES)
        return min(100.0, raised / GRADUATION_SOL_THRESHOLD * 100)


class TokenAccountBalance(BaseModel):
    """A decoded SPL token account."""
    address: str
    mint: str
    owner: str
    amount: int


class AccountSnapshot(BaseModel):
    """Lamport balance and raw data of a ledger account."""
    address: str
    lamports: int
    data: bytes = b""


class SignatureStatus(BaseModel):
    """Confirmation state of a submitted transaction."""
    signature: str
    confirmed: bool = False
    err: Optional[str] = None


class TransactionAttempt(BaseModel):
    """One try at landing a transaction. Never persisted."""
    signature: Optional[str] = None
    attempt_number: int
    blockhash: Optional[str] = None
    confirmed: bool = False
    error: Optional[str] = None


class FeeEstimate(BaseModel):
    """A priority fee estimate in micro-lamports per compute unit."""
    micro_lamports: int
    timestamp: datetime = Field(default_factory=datetime.now)
    is_spike: bool = False


class AllocationPercentages(BaseModel):
    """Share of each claim given to each strategy, in percent."""
    model_config = ConfigDict(frozen=True)

    volume: float
    buyback: float
    airdrop: float
    treasury: float

    def total(self) -> float:
        return self.volume + self.buyback + self.airdrop + self.treasury

    def is_valid(self) -> bool:
        values = (self.volume, self.buyback, self.airdrop, self.treasury)
        return all(v >= 0 for v in values) and abs(self.total() - 100) < 1e-9


class AllocationPlan(BaseModel):
    """
    A claimed amount split across the four strategies.

    Shares are held in lamports and always add up to total_lamports; the
    SOL views are derived from them.
    """
    total_lamports: int = Field(ge=0)
    volume_lamports: int = Field(ge=0)
    buyback_lamports: int = Field(ge=0)
    airdrop_lamports: int = Field(ge=0)
    treasury_lamports: int = Field(ge=0)
    percentages: AllocationPercentages
    override_applied: bool = False

    @property
    def total_amount(self) -> float:
        return self.total_lamports / LAMPORTS_PER_SOL

    @property
    def volume(self) -> float:
        return self.volume_lamports / LAMPORTS_PER_SOL

    @property
    def buyback(self) -> float:
        return self.buyback_lamports / LAMPORTS_PER_SOL

    @property
    def airdrop(self) -> float:
        return self.airdrop_lamports / LAMPORTS_PER_SOL

    @property
    def treasury(self) -> float:
        return self.treasury_lamports / LAMPORTS_PER_SOL

    def lamport_shares(self) -> Dict[str, int]:
        """Shares in execution order, in lamports."""
        return {
            "volume": self.volume_lamports,
            "buyback": self.buyback_lamports,
            "airdrop": self.airdrop_lamports,
            "treasury": self.treasury_lamports,
        }

    def shares(self) -> Dict[str, float]:
        """Shares in execution order, in SOL."""
        return {name: lamports / LAMPORTS_PER_SOL for name, lamports in self.lamport_shares().items()}


class FeeClaim(BaseModel):
    """A confirmed creator fee claim."""
    amount: float
    signature: str
    timestamp: datetime = Field(default_factory=datetime.now)


class StrategyOutcome(BaseModel):
    """Result of running one strategy for one cycle."""
    strategy: str
    amount: float
    success: bool
    signatures: List[str] = Field(default_factory=list)
    error_kind: Optional[str] = None
    error: Optional[str] = None


class SettlementRecord(BaseModel):
    """Audit entry for one distribution cycle."""
    timestamp: datetime = Field(default_factory=datetime.now)
    total_amount: float
    volume: float
    buyback: float
    airdrop: float
    treasury: float
    success: bool
    errors: List[str] = Field(default_factory=list)
    outcomes: List[StrategyOutcome] = Field(default_factory=list)


class HolderSnapshot(BaseModel):
    """Total token balance of one wallet across its token accounts."""
    wallet: str
    token_balance: int


class AirdropAllocation(BaseModel):
    """Lamports owed to one holder for the current cycle."""
    model_config = ConfigDict(frozen=True)

    wallet: str
    proportion: float
    lamports: int = Field(ge=0)

    @property
    def sol_amount(self) -> float:
        return self.lamports / LAMPORTS_PER_SOL


class TradeRecord(BaseModel):
    """A volume trade."""
    wallet: str
    sol_amount: float
    expected_tokens: float = 0
    signature: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class BurnRecord(BaseModel):
    """A buyback followed by a burn transfer."""
    sol_spent: float
    tokens_burned: int
    buy_signature: str
    burn_signature: str
    timestamp: datetime = Field(default_factory=datetime.now)


class AirdropRecord(BaseModel):
    """One airdrop run."""
    total_sol: float
    recipients: int
    failed: int = 0
    signatures: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)


class TreasuryRecord(BaseModel):
    """A treasury transfer."""
    amount: float
    destination: str
    signature: str
    timestamp: datetime = Field(default_factory=datetime.now)


class FeeStats(BaseModel):
    total_collected: float = 0
    claim_count: int = 0
    last_claim_amount: float = 0
    last_claim_time: Optional[datetime] = None
    claim_history: List[FeeClaim] = Field(default_factory=list)
    settlement_history: List[SettlementRecord] = Field(default_factory=list)


class VolumeStats(BaseModel):
    total_trades: int = 0
    successful_trades: int = 0
    failed_trades: int = 0
    total_volume: float = 0
    last_trade_time: Optional[datetime] = None
    trade_history: List[TradeRecord] = Field(default_factory=list)


class BurnStats(BaseModel):
    total_burned: int = 0
    total_sol_spent: float = 0
    burn_count: int = 0
    last_burn_time: Optional[datetime] = None
    burn_history: List[BurnRecord] = Field(default_factory=list)


class AirdropStats(BaseModel):
    total_distributed: float = 0
    airdrop_count: int = 0
    unique_recipients: Set[str] = Field(default_factory=set)
    last_airdrop_time: Optional[datetime] = None
    airdrop_history: List[AirdropRecord] = Field(default_factory=list)


class TreasuryStats(BaseModel):
    total_transferred: float = 0
    transfer_count: int = 0
    last_transfer_time: Optional[datetime] = None
    transfer_history: List[TreasuryRecord] = Field(default_factory=list)


class EngineStats(BaseModel):
    """All statistics kept by a running engine."""
    started_at: datetime = Field(default_factory=datetime.now)
    fees: FeeStats = Field(default_factory=FeeStats)
    volume: VolumeStats = Field(default_factory=VolumeStats)
    burn: BurnStats = Field(default_factory=BurnStats)
    airdrop: AirdropStats = Field(default_factory=AirdropStats)
    treasury: TreasuryStats = Field(default_factory=TreasuryStats)
