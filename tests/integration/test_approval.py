"""Integration tests for the decision gate."""
from __future__ import annotations

import asyncio

import pytest

from stableyield.config import GuardrailsConfig
from stableyield.engine.costs import CostEstimator
from stableyield.engine.synthesizer import IntentSynthesizer
from stableyield.execution import Decision, DecisionGate
from stableyield.models import RebalanceIntent, YieldOpportunity, YieldPosition


@pytest.fixture()
def intent(
    estimator: CostEstimator,
    lenient_guardrails: GuardrailsConfig,
    sample_position: YieldPosition,
    sample_opportunity: YieldOpportunity,
) -> RebalanceIntent:
    return IntentSynthesizer(estimator).build_intent(
        sample_position, sample_opportunity, lenient_guardrails
    )


async def _pending(gate: DecisionGate, intent: RebalanceIntent) -> asyncio.Future:
    request = asyncio.ensure_future(gate.request(intent))
    while intent.id not in gate.pending:
        await asyncio.sleep(0)
    return request


class TestDecisionGate:
    @pytest.mark.asyncio
    async def test_approve(self, intent: RebalanceIntent) -> None:
        presented = []
        gate = DecisionGate(timeout_seconds=5, present=presented.append)

        request = await _pending(gate, intent)
        assert gate.approve(intent.id) is True

        assert await request is Decision.APPROVED
        assert presented == [intent]
        assert gate.pending == ()

    @pytest.mark.asyncio
    async def test_reject(self, intent: RebalanceIntent) -> None:
        gate = DecisionGate(timeout_seconds=5)

        request = await _pending(gate, intent)
        assert gate.reject(intent.id) is True

        assert await request is Decision.REJECTED

    @pytest.mark.asyncio
    async def test_expires(self, intent: RebalanceIntent) -> None:
        gate = DecisionGate(timeout_seconds=0.01)
        assert await gate.request(intent) is Decision.EXPIRED
        assert gate.pending == ()

    @pytest.mark.asyncio
    async def test_unknown_or_settled_intent(self, intent: RebalanceIntent) -> None:
        gate = DecisionGate(timeout_seconds=5)
        assert gate.approve("nope") is False

        request = await _pending(gate, intent)
        gate.approve(intent.id)
        assert gate.reject(intent.id) is False
        assert await request is Decision.APPROVED

    @pytest.mark.asyncio
    async def test_duplicate_request(self, intent: RebalanceIntent) -> None:
        gate = DecisionGate(timeout_seconds=5)
        request = await _pending(gate, intent)

        with pytest.raises(ValueError, match="already awaiting"):
            await gate.request(intent)

        gate.reject(intent.id)
        assert await request is Decision.REJECTED
