"""Intent synthesis — pair positions with better-paying opportunities."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Mapping

from ..config import GuardrailsConfig
from ..models import (
    Chain,
    IntentSource,
    IntentTarget,
    NetBenefit,
    RebalanceIntent,
    YieldOpportunity,
    YieldPosition,
)
from .calculations import calc_break_even_days, calc_yearly_gain, parse_amount, to_money
from .costs import CostEstimator, GasQuote
from .guardrails import evaluate_intent

logger = logging.getLogger(__name__)

GasFees = Mapping[tuple[Chain, Chain], GasQuote]


def is_candidate(position: YieldPosition, opportunity: YieldOpportunity) -> bool:
    """Same token, strictly higher APY, and not the position's own pool."""
    return (
        opportunity.token == position.token
        and opportunity.apy > position.apy
        and (
            opportunity.chain != position.chain
            or opportunity.protocol != position.protocol
        )
    )


class IntentSynthesizer:
    """Build guardrail-annotated intents for every position.

    Failing intents are returned too; filtering to approved ones is the
    analyzer's job.
    """

    def __init__(self, estimator: CostEstimator, max_per_position: int = 3) -> None:
        self._estimator = estimator
        self._max_per_position = max_per_position

    def candidates_for(
        self, position: YieldPosition, ranked: Iterable[YieldOpportunity]
    ) -> list[YieldOpportunity]:
        matches = [opp for opp in ranked if is_candidate(position, opp)]
        return matches[: self._max_per_position]

    def build_intent(
        self,
        position: YieldPosition,
        opportunity: YieldOpportunity,
        guardrails: GuardrailsConfig,
        gas_fee_usd: float | None = None,
        gas_fee_wei: int | None = None,
    ) -> RebalanceIntent:
        cost = self._estimator.estimate_cost_raw(
            position.chain,
            opportunity.chain,
            position.deposited_amount,
            gas_fee_usd,
            gas_fee_wei,
        )
        yearly_gain = calc_yearly_gain(
            parse_amount(position.deposited_amount), opportunity.apy - position.apy
        )

        intent = RebalanceIntent(
            id=f"{position.id}-to-{opportunity.id}",
            token=position.token,
            source=IntentSource(
                position_id=position.id,
                chain=position.chain,
                protocol=position.protocol,
                amount=position.deposited_amount,
                contract_address=position.contract_address,
                apy=position.apy,
            ),
            target=IntentTarget(
                opportunity_id=opportunity.id,
                chain=opportunity.chain,
                protocol=opportunity.protocol,
                expected_apy=opportunity.apy,
                contract_address=opportunity.contract_address,
            ),
            estimated_cost=cost.to_estimate(),
            net_benefit=NetBenefit(
                yearly_gain_usd=to_money(yearly_gain),
                net_yearly_gain_usd=to_money(yearly_gain - cost.total),
                break_even_days=calc_break_even_days(cost.total, yearly_gain),
            ),
        )
        return replace(intent, guardrails_status=evaluate_intent(intent, guardrails))

    def synthesize(
        self,
        positions: Iterable[YieldPosition],
        ranked: Iterable[YieldOpportunity],
        guardrails: GuardrailsConfig,
        gas_fees: GasFees | None = None,
    ) -> list[RebalanceIntent]:
        ranked = list(ranked)
        intents: list[RebalanceIntent] = []
        for position in positions:
            for opportunity in self.candidates_for(position, ranked):
                quote = None
                if gas_fees is not None:
                    quote = gas_fees.get((position.chain, opportunity.chain))
                intents.append(
                    self.build_intent(
                        position,
                        opportunity,
                        guardrails,
                        quote.usd if quote is not None else None,
                        quote.wei if quote is not None else None,
                    )
                )
        logger.debug("Synthesized %d rebalance intents", len(intents))
        return intents
