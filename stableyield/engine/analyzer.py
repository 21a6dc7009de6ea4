"""Rebalance analysis — opportunities + positions + guardrails → actions."""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Iterable, Sequence

from ..catalog import OpportunityCatalog
from ..config import GuardrailsConfig
from ..interfaces.gas_oracle import GasOracle
from ..models import (
    Chain,
    GuardrailCheck,
    IntentStatus,
    RebalanceAnalysis,
    RebalanceIntent,
    RiskTolerance,
    YieldOpportunity,
    YieldPosition,
)
from .calculations import (
    calc_protocol_allocation,
    calc_weighted_apy,
    parse_amount,
    to_money,
)
from .costs import GasQuote, quote_gas_fee
from .guardrails import evaluate_opportunity
from .ranker import rank_opportunities
from .synthesizer import GasFees, IntentSynthesizer

logger = logging.getLogger(__name__)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def approved_only(intents: Iterable[RebalanceIntent]) -> list[RebalanceIntent]:
    """Keep intents that passed every check, marked ``approved``."""
    return [
        intent.with_status(IntentStatus.APPROVED)
        for intent in intents
        if intent.passed_guardrails
    ]


def calc_projected_apy(
    positions: Sequence[YieldPosition], intents: Iterable[RebalanceIntent]
) -> float:
    """Weighted APY after each position moves to its best approved target."""
    best_apy: dict[str, float] = {}
    for intent in intents:
        position_id = intent.source.position_id
        if intent.target.expected_apy > best_apy.get(position_id, float("-inf")):
            best_apy[position_id] = intent.target.expected_apy

    projected = [
        replace(pos, apy=best_apy[pos.id]) if pos.id in best_apy else pos
        for pos in positions
    ]
    return calc_weighted_apy(projected)


class RebalanceAnalyzer:
    """Turn positions into a ranked, guardrail-filtered rebalance plan.

    The guardrails config is held here and only ever replaced wholesale,
    so each analysis sees one consistent policy.
    """

    def __init__(
        self,
        catalog: OpportunityCatalog,
        synthesizer: IntentSynthesizer,
        guardrails: GuardrailsConfig,
        top_n: int = 10,
        gas_oracle: GasOracle | None = None,
        now_ms: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._catalog = catalog
        self._synthesizer = synthesizer
        self._guardrails = guardrails
        self._top_n = top_n
        self._gas_oracle = gas_oracle
        self._now_ms = now_ms

    # ------------------------------------------------------------------
    # Guardrails
    # ------------------------------------------------------------------

    @property
    def guardrails(self) -> GuardrailsConfig:
        return self._guardrails

    def update_guardrails(self, **changes) -> GuardrailsConfig:
        self._guardrails = self._guardrails.updated(**changes)
        return self._guardrails

    def set_risk_tolerance(self, tolerance: RiskTolerance | str) -> GuardrailsConfig:
        self._guardrails = self._guardrails.with_risk_tolerance(tolerance)
        logger.info("Risk tolerance set to %s", self._guardrails.risk_tolerance.value)
        return self._guardrails

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def find_opportunities(self) -> list[YieldOpportunity]:
        opportunities = await self._catalog.fetch_opportunities()
        return rank_opportunities(opportunities)

    async def _quote_gas_fees(
        self, positions: Sequence[YieldPosition], ranked: Sequence[YieldOpportunity]
    ) -> GasFees | None:
        if self._gas_oracle is None:
            return None
        pairs: set[tuple[Chain, Chain]] = set()
        for position in positions:
            for opportunity in self._synthesizer.candidates_for(position, ranked):
                pairs.add((position.chain, opportunity.chain))
        fees: dict[tuple[Chain, Chain], GasQuote] = {}
        for from_chain, to_chain in sorted(pairs, key=lambda p: (p[0].value, p[1].value)):
            fees[(from_chain, to_chain)] = await quote_gas_fee(
                self._gas_oracle, from_chain, to_chain
            )
        return fees

    async def analyze(
        self, positions: Sequence[YieldPosition], idle_balance: str = "0"
    ) -> RebalanceAnalysis:
        """Run one full analysis. Same inputs and feed give the same result,
        apart from ``timestamp``."""
        logger.info("Starting rebalance analysis for %d positions", len(positions))
        guardrails = self._guardrails
        positions = tuple(positions)

        ranked = await self.find_opportunities()
        gas_fees = await self._quote_gas_fees(positions, ranked)

        intents = self._synthesizer.synthesize(positions, ranked, guardrails, gas_fees)
        approved = approved_only(intents)

        for intent in intents:
            if not intent.passed_guardrails:
                logger.debug(
                    "Intent %s blocked: %s",
                    intent.id,
                    "; ".join(c.message for c in intent.failed_checks),
                )

        total_cost = sum(parse_amount(i.estimated_cost.total_cost_usd) for i in approved)
        yearly_gain = sum(parse_amount(i.net_benefit.yearly_gain_usd) for i in approved)

        analysis = RebalanceAnalysis(
            current_positions=positions,
            opportunities=tuple(ranked[: self._top_n]),
            rebalance_intents=tuple(approved),
            total_current_apy=calc_weighted_apy(positions),
            total_projected_apy=calc_projected_apy(positions, approved),
            total_cost_usd=to_money(total_cost),
            total_yearly_gain_usd=to_money(yearly_gain),
            net_yearly_gain_usd=to_money(yearly_gain - total_cost),
            recommended_actions=len(approved),
            idle_balance=idle_balance,
            timestamp=self._now_ms(),
        )
        logger.info(
            "Analysis complete: %d recommended actions (%d blocked)",
            analysis.recommended_actions,
            len(intents) - len(approved),
        )
        return analysis

    def screen_opportunities(
        self,
        positions: Sequence[YieldPosition],
        opportunities: Iterable[YieldOpportunity],
    ) -> list[tuple[YieldOpportunity, tuple[GuardrailCheck, ...]]]:
        """Opportunity-level checks against the current portfolio.

        The APY reference is the portfolio's weighted APY for the
        opportunity's token; allocation is the share already held in the
        opportunity's protocol.
        """
        screened = []
        for opportunity in opportunities:
            same_token = [p for p in positions if p.token == opportunity.token]
            current_apy = calc_weighted_apy(same_token)
            allocation = calc_protocol_allocation(positions, opportunity.protocol)
            checks = evaluate_opportunity(
                opportunity, current_apy, allocation, self._guardrails
            )
            screened.append((opportunity, checks))
        return screened

    def blocked_intents(
        self, positions: Sequence[YieldPosition], ranked: Sequence[YieldOpportunity]
    ) -> list[RebalanceIntent]:
        """Intents the current guardrails reject, for explaining a plan."""
        intents = self._synthesizer.synthesize(positions, ranked, self._guardrails)
        return [i for i in intents if not i.passed_guardrails]
