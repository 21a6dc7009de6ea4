"""Top-level orchestration: wires catalog, analyzer and executor from config."""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Sequence

from ..catalog import DefiLlamaClient, OpportunityCatalog
from ..config import AppConfig
from ..engine import CostEstimator, IntentSynthesizer, RebalanceAnalyzer
from ..engine.calculations import to_money
from ..errors import ExecutionError
from ..execution import Decision, DecisionGate, RebalanceExecutor
from ..interfaces import Mover, PositionSource, YieldSource
from ..models import (
    ExecutionResult,
    RebalanceAnalysis,
    RebalanceIntent,
    TxResult,
    YieldOpportunity,
    YieldPosition,
)
from ..oracles import MarketGasOracle
from ..sources import StaticPositionSource
from .session import AnalysisSession

logger = logging.getLogger(__name__)


def _format_wallet(address: str) -> str:
    if len(address) > 16:
        return f"{address[:10]}...{address[-6:]}"
    return address


class YieldOptimizer:
    """Find, explain and carry out stablecoin rebalances for configured wallets."""

    def __init__(
        self,
        config: AppConfig,
        position_source: PositionSource | None = None,
        mover: Mover | None = None,
        yield_source: YieldSource | None = None,
    ) -> None:
        self._config = config

        self.catalog = OpportunityCatalog(
            yield_source or DefiLlamaClient(config.feed),
            config.feed,
            config.protocols,
        )

        gas_oracle = None
        if config.costs.use_gas_oracle:
            gas_oracle = MarketGasOracle.from_config(config.chains, config.costs)

        self.analyzer = RebalanceAnalyzer(
            self.catalog,
            IntentSynthesizer(
                CostEstimator(config.costs),
                config.analysis.max_intents_per_position,
            ),
            config.guardrails,
            top_n=config.analysis.top_opportunities,
            gas_oracle=gas_oracle,
        )

        if position_source is None:
            position_source = StaticPositionSource(
                {w.address: w.positions_file for w in config.wallets if w.positions_file}
            )
        self._positions = position_source

        # One session per wallet so wallets never block each other.
        self._sessions: dict[str, AnalysisSession] = {}

        self._executor = RebalanceExecutor(mover, config.execution) if mover else None
        self.gate = DecisionGate(config.execution.decision_timeout_seconds)

    def _session(self, address: str) -> AnalysisSession:
        key = address.lower()
        if key not in self._sessions:
            self._sessions[key] = AnalysisSession(
                self.analyzer, self._config.analysis.run_policy
            )
        return self._sessions[key]

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def list_opportunities(self, limit: int | None = None) -> list[YieldOpportunity]:
        ranked = await self.analyzer.find_opportunities()
        return ranked[:limit] if limit is not None else ranked

    async def analyze_positions(
        self,
        positions: Sequence[YieldPosition],
        idle_balance: str = "0",
        address: str = "",
    ) -> RebalanceAnalysis:
        return await self._session(address).run(positions, idle_balance)

    async def analyze_wallet(self, address: str) -> RebalanceAnalysis:
        positions = await self._positions.fetch_positions(address)
        balances = await self._positions.fetch_balances(address)
        idle = sum((Decimal(str(b.idle_value_usd)) for b in balances), Decimal(0))
        return await self.analyze_positions(positions, to_money(float(idle)), address)

    async def execute(
        self,
        intent: RebalanceIntent,
        address: str,
        position: YieldPosition | None = None,
    ) -> ExecutionResult:
        if self._executor is None:
            raise ExecutionError("No mover configured for execution", intent=intent)
        return await self._executor.execute_rebalance(
            intent, address, intent.token, position
        )

    async def idle_amount(self, address: str, token: str) -> Decimal:
        balances = await self._positions.fetch_balances(address)
        return sum(
            (b.idle_amount for b in balances if b.token.upper() == token.upper()),
            Decimal(0),
        )

    async def deposit(
        self, opportunity: YieldOpportunity, amount: str, address: str
    ) -> TxResult:
        """Put idle wallet funds to work in ``opportunity``."""
        if self._executor is None:
            raise ExecutionError("No mover configured for execution", chain=opportunity.chain)
        available = await self.idle_amount(address, opportunity.token)
        return await self._executor.deposit(
            opportunity, amount, address, str(available)
        )

    async def execute_with_approval(
        self,
        intent: RebalanceIntent,
        address: str,
        position: YieldPosition | None = None,
    ) -> ExecutionResult | None:
        """Ask the decision gate first; returns None unless approved."""
        decision = await self.gate.request(intent)
        if decision is not Decision.APPROVED:
            logger.info("Intent %s not executed: %s", intent.id, decision.value)
            return None
        return await self.execute(intent, address, position)

    async def check_wallets(self) -> dict[str, RebalanceAnalysis]:
        """Analyze every configured wallet and log the recommendations."""
        results: dict[str, RebalanceAnalysis] = {}
        for wallet in self._config.wallets:
            analysis = await self.analyze_wallet(wallet.address)
            results[wallet.address] = analysis
            logger.info(
                "%s (%s): %d positions, APY %.2f%% -> %.2f%%, %d recommended actions, "
                "net $%s/yr, idle $%s",
                wallet.label or "wallet",
                _format_wallet(wallet.address),
                len(analysis.current_positions),
                analysis.total_current_apy,
                analysis.total_projected_apy,
                analysis.recommended_actions,
                analysis.net_yearly_gain_usd,
                analysis.idle_balance,
            )
            for intent in analysis.rebalance_intents:
                logger.info(
                    "  %s: %s -> %s on %s (%.2f%% -> %.2f%%), cost $%s, break-even %s days",
                    intent.id,
                    intent.source.protocol.value,
                    intent.target.protocol.value,
                    intent.target.chain.value,
                    intent.source.apy,
                    intent.target.expected_apy,
                    intent.estimated_cost.total_cost_usd,
                    intent.net_benefit.break_even_days,
                )
        return results

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run the analysis loop until cancelled."""
        interval = check_interval_minutes or self._config.analysis.check_interval_minutes
        logger.info("Starting continuous analysis (every %d minutes)", interval)

        while True:
            try:
                await self.check_wallets()
                await asyncio.sleep(interval * 60)
            except Exception as e:
                logger.error("Error in analysis loop: %s", e)
                await asyncio.sleep(60)

