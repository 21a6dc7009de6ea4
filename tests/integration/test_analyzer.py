"""Integration tests for the rebalance analyzer with a mocked catalog."""
from __future__ import annotations

from dataclasses import replace
from typing import Callable
from unittest.mock import AsyncMock

import pytest

from stableyield.config import GuardrailsConfig
from stableyield.engine.analyzer import RebalanceAnalyzer, calc_projected_apy
from stableyield.engine.costs import CostEstimator
from stableyield.engine.synthesizer import IntentSynthesizer
from stableyield.models import (
    Chain,
    GuardrailRule,
    IntentStatus,
    ProtocolName,
    RiskTolerance,
    YieldOpportunity,
    YieldPosition,
)

OppFactory = Callable[..., YieldOpportunity]
PosFactory = Callable[..., YieldPosition]


@pytest.fixture()
def catalog(sample_opportunity: YieldOpportunity) -> AsyncMock:
    mock = AsyncMock()
    mock.fetch_opportunities.return_value = (sample_opportunity,)
    return mock


def _analyzer(
    catalog: AsyncMock,
    estimator: CostEstimator,
    guardrails: GuardrailsConfig,
    **kwargs,
) -> RebalanceAnalyzer:
    return RebalanceAnalyzer(
        catalog, IntentSynthesizer(estimator), guardrails, now_ms=lambda: 123, **kwargs
    )


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_scenario_approved(
        self,
        catalog: AsyncMock,
        estimator: CostEstimator,
        lenient_guardrails: GuardrailsConfig,
        sample_position: YieldPosition,
    ) -> None:
        analyzer = _analyzer(catalog, estimator, lenient_guardrails)
        analysis = await analyzer.analyze([sample_position], idle_balance="750.00")

        assert analysis.recommended_actions == 1
        intent = analysis.rebalance_intents[0]
        assert intent.status is IntentStatus.APPROVED
        assert analysis.total_current_apy == pytest.approx(4.0)
        assert analysis.total_projected_apy == pytest.approx(6.1)
        assert analysis.total_cost_usd == "22.50"
        assert analysis.total_yearly_gain_usd == "105.00"
        assert analysis.net_yearly_gain_usd == "82.50"
        assert analysis.idle_balance == "750.00"
        assert analysis.timestamp == 123

    @pytest.mark.asyncio
    async def test_large_min_delta_blocks_everything(
        self,
        catalog: AsyncMock,
        estimator: CostEstimator,
        lenient_guardrails: GuardrailsConfig,
        sample_position: YieldPosition,
    ) -> None:
        analyzer = _analyzer(catalog, estimator, lenient_guardrails)
        analyzer.update_guardrails(min_apy_delta=10.0)

        analysis = await analyzer.analyze([sample_position])

        assert analysis.rebalance_intents == ()
        assert analysis.recommended_actions == 0
        assert analysis.total_projected_apy == pytest.approx(analysis.total_current_apy)
        assert analysis.total_cost_usd == "0.00"
        assert analysis.net_yearly_gain_usd == "0.00"

        blocked = analyzer.blocked_intents([sample_position], await analyzer.find_opportunities())
        assert [c.rule for c in blocked[0].failed_checks] == [GuardrailRule.MIN_APY_DELTA]

    @pytest.mark.asyncio
    async def test_default_guardrails_reject_long_break_even(
        self,
        catalog: AsyncMock,
        estimator: CostEstimator,
        guardrails: GuardrailsConfig,
        sample_position: YieldPosition,
    ) -> None:
        analysis = await _analyzer(catalog, estimator, guardrails).analyze([sample_position])
        assert analysis.recommended_actions == 0

    @pytest.mark.asyncio
    async def test_idempotent_apart_from_timestamp(
        self,
        catalog: AsyncMock,
        estimator: CostEstimator,
        lenient_guardrails: GuardrailsConfig,
        sample_position: YieldPosition,
    ) -> None:
        stamps = iter([1, 2])
        analyzer = RebalanceAnalyzer(
            catalog,
            IntentSynthesizer(estimator),
            lenient_guardrails,
            now_ms=lambda: next(stamps),
        )
        first = await analyzer.analyze([sample_position])
        second = await analyzer.analyze([sample_position])
        assert first.timestamp != second.timestamp
        assert replace(first, timestamp=0) == replace(second, timestamp=0)

    @pytest.mark.asyncio
    async def test_empty_catalog(
        self,
        estimator: CostEstimator,
        guardrails: GuardrailsConfig,
        sample_position: YieldPosition,
    ) -> None:
        catalog = AsyncMock()
        catalog.fetch_opportunities.return_value = ()
        analysis = await _analyzer(catalog, estimator, guardrails).analyze([sample_position])
        assert analysis.opportunities == ()
        assert analysis.rebalance_intents == ()
        assert analysis.total_current_apy == pytest.approx(4.0)

    @pytest.mark.asyncio
    async def test_top_n_opportunities(
        self,
        estimator: CostEstimator,
        guardrails: GuardrailsConfig,
        make_opportunity: OppFactory,
    ) -> None:
        catalog = AsyncMock()
        catalog.fetch_opportunities.return_value = tuple(
            make_opportunity(id=f"o{i}", apy=float(i + 1)) for i in range(15)
        )
        analysis = await _analyzer(catalog, estimator, guardrails, top_n=10).analyze([])
        assert len(analysis.opportunities) == 10
        assert analysis.opportunities[0].id == "o14"
        assert analysis.total_current_apy == 0.0

    @pytest.mark.asyncio
    async def test_gas_oracle_quotes_each_chain_pair_once(
        self,
        catalog: AsyncMock,
        estimator: CostEstimator,
        lenient_guardrails: GuardrailsConfig,
        make_position: PosFactory,
    ) -> None:
        oracle = AsyncMock()
        oracle.estimate_gas.side_effect = lambda chain, units: units * 10**9
        oracle.get_native_token_price_usd.return_value = 2000.0
        analyzer = _analyzer(catalog, estimator, lenient_guardrails, gas_oracle=oracle)

        positions = [make_position(id="a"), make_position(id="b")]
        analysis = await analyzer.analyze(positions)

        # one ethereum -> arbitrum pair: two estimate_gas calls
        assert oracle.estimate_gas.await_count == 2
        gas = analysis.rebalance_intents[0].estimated_cost.gas_fee
        # (350k + 250k) gas at 1 gwei and $2000
        assert gas == "1.20"
        assert analysis.rebalance_intents[0].estimated_cost.gas_fee_wei == 600_000 * 10**9

    @pytest.mark.asyncio
    async def test_oracle_gas_above_ceiling_blocks(
        self,
        catalog: AsyncMock,
        estimator: CostEstimator,
        lenient_guardrails: GuardrailsConfig,
        sample_position: YieldPosition,
    ) -> None:
        oracle = AsyncMock()
        # 1000 gwei: 0.6 native tokens for the move, above the 0.1 ceiling
        oracle.estimate_gas.side_effect = lambda chain, units: units * 10**12
        oracle.get_native_token_price_usd.return_value = 1.0
        analyzer = _analyzer(catalog, estimator, lenient_guardrails, gas_oracle=oracle)

        analysis = await analyzer.analyze([sample_position])

        assert analysis.recommended_actions == 0


class TestGuardrailsHeldByAnalyzer:
    def test_set_risk_tolerance_replaces_wholesale(
        self, catalog: AsyncMock, estimator: CostEstimator, guardrails: GuardrailsConfig
    ) -> None:
        analyzer = _analyzer(catalog, estimator, guardrails.updated(gas_ceiling=7))
        before = analyzer.guardrails
        after = analyzer.set_risk_tolerance(RiskTolerance.CONSERVATIVE)
        assert analyzer.guardrails is after
        assert before.min_apy_delta == 1.0
        assert after.min_apy_delta == 2.0
        assert after.max_slippage == 0.3
        assert after.gas_ceiling == 7


class TestScreenOpportunities:
    def test_uses_token_apy_and_protocol_allocation(
        self,
        catalog: AsyncMock,
        estimator: CostEstimator,
        guardrails: GuardrailsConfig,
        make_position: PosFactory,
        make_opportunity: OppFactory,
    ) -> None:
        positions = [
            make_position(id="a", protocol=ProtocolName.AAVE, current_value="600", apy=4.0),
            make_position(id="b", protocol=ProtocolName.CURVE, current_value="400", apy=3.0, token="DAI"),
        ]
        aave = make_opportunity(protocol=ProtocolName.AAVE, apy=6.0)
        curve = make_opportunity(protocol=ProtocolName.CURVE, token="DAI", apy=3.5, chain=Chain.POLYGON)

        screened = _analyzer(catalog, estimator, guardrails).screen_opportunities(
            positions, [aave, curve]
        )

        aave_checks = dict((c.rule, c) for c in screened[0][1])
        assert aave_checks[GuardrailRule.MIN_APY_DELTA].passed
        assert not aave_checks[GuardrailRule.MAX_PROTOCOL_ALLOCATION].passed  # 60% > 40%
        curve_checks = dict((c.rule, c) for c in screened[1][1])
        assert not curve_checks[GuardrailRule.MIN_APY_DELTA].passed  # 0.5 < 1.0
        assert curve_checks[GuardrailRule.MAX_PROTOCOL_ALLOCATION].passed


class TestProjectedApy:
    def test_best_approved_target_per_position(
        self,
        catalog: AsyncMock,
        estimator: CostEstimator,
        lenient_guardrails: GuardrailsConfig,
        sample_position: YieldPosition,
        make_opportunity: OppFactory,
        make_position: PosFactory,
    ) -> None:
        synth = IntentSynthesizer(estimator)
        intents = [
            synth.build_intent(sample_position, make_opportunity(apy=6.1), lenient_guardrails),
            synth.build_intent(sample_position, make_opportunity(apy=7.0), lenient_guardrails),
        ]
        other = make_position(id="other", current_value="5000", apy=2.0)
        projected = calc_projected_apy([sample_position, other], intents)
        assert projected == pytest.approx((7.0 + 2.0) / 2)
