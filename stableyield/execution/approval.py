"""Explicit user decision on a proposed rebalance."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable

from ..models import RebalanceIntent

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    # Market data may have moved; the caller should re-run the analysis.
    EXPIRED = "expired"


def _log_intent(intent: RebalanceIntent) -> None:
    logger.info(
        "Awaiting decision on %s: %s %s -> %s at %.2f%% (cost $%s, net $%s/yr)",
        intent.id,
        intent.source.amount,
        intent.token,
        intent.target.protocol.value,
        intent.target.expected_apy,
        intent.estimated_cost.total_cost_usd,
        intent.net_benefit.net_yearly_gain_usd,
    )


class DecisionGate:
    """Hold intents until someone approves or rejects them, or time runs out."""

    def __init__(
        self,
        timeout_seconds: float = 120.0,
        present: Callable[[RebalanceIntent], None] = _log_intent,
    ) -> None:
        self._timeout = timeout_seconds
        self._present = present
        self._pending: dict[str, asyncio.Future[Decision]] = {}

    @property
    def pending(self) -> tuple[str, ...]:
        return tuple(self._pending)

    async def request(self, intent: RebalanceIntent) -> Decision:
        if intent.id in self._pending:
            raise ValueError(f"Intent {intent.id} is already awaiting a decision")

        future: asyncio.Future[Decision] = asyncio.get_running_loop().create_future()
        self._pending[intent.id] = future
        self._present(intent)
        try:
            decision = await asyncio.wait_for(future, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Decision on %s expired after %ss", intent.id, self._timeout)
            decision = Decision.EXPIRED
        finally:
            self._pending.pop(intent.id, None)
        return decision

    def _resolve(self, intent_id: str, decision: Decision) -> bool:
        future = self._pending.get(intent_id)
        if future is None or future.done():
            return False
        future.set_result(decision)
        return True

    def approve(self, intent_id: str) -> bool:
        return self._resolve(intent_id, Decision.APPROVED)

    def reject(self, intent_id: str) -> bool:
        return self._resolve(intent_id, Decision.REJECTED)
