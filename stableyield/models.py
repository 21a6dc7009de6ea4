"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Union

from .errors import InvalidTransitionError

CheckValue = Union[str, int, float, None]


class ProtocolName(str, Enum):
    AAVE = "Aave"
    COMPOUND = "Compound"
    YEARN = "Yearn"
    CURVE = "Curve"
    BEEFY = "Beefy"


class Chain(str, Enum):
    ETHEREUM = "ethereum"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"
    OPTIMISM = "optimism"
    BASE = "base"

    @property
    def chain_id(self) -> int:
        return _CHAIN_IDS[self]


_CHAIN_IDS = {
    Chain.ETHEREUM: 1,
    Chain.POLYGON: 137,
    Chain.ARBITRUM: 42161,
    Chain.OPTIMISM: 10,
    Chain.BASE: 8453,
}


class GuardrailRule(str, Enum):
    MAX_SLIPPAGE = "MAX_SLIPPAGE"
    GAS_CEILING = "GAS_CEILING"
    MIN_APY_DELTA = "MIN_APY_DELTA"
    MAX_PROTOCOL_ALLOCATION = "MAX_PROTOCOL_ALLOCATION"
    PROTOCOL_BLACKLIST = "PROTOCOL_BLACKLIST"
    MIN_BREAKEVEN_DAYS = "MIN_BREAKEVEN_DAYS"


class RiskTolerance(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class IntentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


# One-directional lifecycle; completed and failed are terminal.
_ALLOWED_TRANSITIONS: dict[IntentStatus, frozenset[IntentStatus]] = {
    IntentStatus.PENDING: frozenset({IntentStatus.APPROVED}),
    IntentStatus.APPROVED: frozenset({IntentStatus.EXECUTING}),
    IntentStatus.EXECUTING: frozenset({IntentStatus.COMPLETED, IntentStatus.FAILED}),
    IntentStatus.COMPLETED: frozenset(),
    IntentStatus.FAILED: frozenset(),
}


# ---------------------------------------------------------------------------
# Opportunities and positions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpportunityMetadata:
    audit_status: bool
    time_in_market: int = 0
    historical_exploits: int = 0


@dataclass(frozen=True)
class YieldOpportunity:
    """A place a stablecoin can be deposited, as seen at ``last_updated``."""

    id: str
    protocol: ProtocolName
    chain: Chain
    token: str
    apy: float
    tvl: float
    risk_score: int
    contract_address: str
    deposit_function: str
    withdraw_function: str
    last_updated: int
    metadata: OpportunityMetadata


@dataclass(frozen=True)
class YieldPosition:
    """A user's stake in a protocol. Amounts are decimal strings."""

    id: str
    protocol: ProtocolName
    chain: Chain
    token: str
    deposited_amount: str
    current_value: str
    apy: float
    earned_yield: str = "0"
    deposit_timestamp: int = 0
    contract_address: str = ""


@dataclass(frozen=True)
class ChainBalance:
    chain: Chain
    amount: str
    value_usd: float
    in_yield_protocol: bool = False
    protocol: ProtocolName | None = None


@dataclass(frozen=True)
class StableBalance:
    """Unified balance of one stablecoin across chains."""

    token: str
    total_amount: str
    total_value_usd: float
    breakdown: tuple[ChainBalance, ...] = ()

    @property
    def is_idle(self) -> bool:
        return all(not b.in_yield_protocol for b in self.breakdown)

    @property
    def idle_value_usd(self) -> float:
        """USD value sitting in the wallet rather than in a protocol."""
        if not self.breakdown:
            return self.total_value_usd
        return sum(b.value_usd for b in self.breakdown if not b.in_yield_protocol)

    @property
    def idle_amount(self) -> Decimal:
        """Token amount sitting in the wallet, summed across chains."""
        if not self.breakdown:
            return Decimal(self.total_amount)
        return sum(
            (Decimal(b.amount) for b in self.breakdown if not b.in_yield_protocol),
            Decimal(0),
        )


# ---------------------------------------------------------------------------
# Rebalance intents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GuardrailCheck:
    rule: GuardrailRule
    passed: bool
    value: CheckValue
    threshold: CheckValue
    message: str


@dataclass(frozen=True)
class IntentSource:
    position_id: str
    chain: Chain
    protocol: ProtocolName
    amount: str
    contract_address: str
    apy: float


@dataclass(frozen=True)
class IntentTarget:
    opportunity_id: str
    chain: Chain
    protocol: ProtocolName
    expected_apy: float
    contract_address: str


@dataclass(frozen=True)
class CostEstimate:
    gas_fee: str
    bridge_fee: str
    slippage: str
    total_cost_usd: str
    # Gas bill in the source chain's native wei, for the gas ceiling.
    gas_fee_wei: int = 0


@dataclass(frozen=True)
class NetBenefit:
    yearly_gain_usd: str
    net_yearly_gain_usd: str
    # None when the move never pays for itself
    break_even_days: int | None


@dataclass(frozen=True)
class RebalanceIntent:
    """A proposed move of one position into one opportunity."""

    id: str
    token: str
    source: IntentSource
    target: IntentTarget
    estimated_cost: CostEstimate
    net_benefit: NetBenefit
    guardrails_status: tuple[GuardrailCheck, ...] = ()
    status: IntentStatus = IntentStatus.PENDING

    @property
    def is_cross_chain(self) -> bool:
        return self.source.chain != self.target.chain

    @property
    def passed_guardrails(self) -> bool:
        return all(check.passed for check in self.guardrails_status)

    @property
    def failed_checks(self) -> tuple[GuardrailCheck, ...]:
        return tuple(c for c in self.guardrails_status if not c.passed)

    def with_status(self, status: IntentStatus) -> RebalanceIntent:
        """Return a copy in ``status``; raises on a backwards or skipped step."""
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Intent {self.id} cannot move from {self.status.value} to {status.value}"
            )
        return replace(self, status=status)


@dataclass(frozen=True)
class RebalanceAnalysis:
    current_positions: tuple[YieldPosition, ...]
    opportunities: tuple[YieldOpportunity, ...]
    rebalance_intents: tuple[RebalanceIntent, ...]
    total_current_apy: float
    total_projected_apy: float
    total_cost_usd: str
    total_yearly_gain_usd: str
    net_yearly_gain_usd: str
    recommended_actions: int
    idle_balance: str = "0"
    timestamp: int = 0


# ---------------------------------------------------------------------------
# Execution results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TxResult:
    tx_hash: str
    chain: Chain | None = None


@dataclass(frozen=True)
class ExecutionResult:
    intent: RebalanceIntent
    withdraw: TxResult
    deposit: TxResult
    steps: tuple[str, ...] = field(default_factory=tuple)
