"""Keep at most one rebalance analysis in flight."""
from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ..engine.analyzer import RebalanceAnalyzer
from ..models import RebalanceAnalysis, YieldPosition

logger = logging.getLogger(__name__)

RUN_POLICIES = ("ignore", "restart")


class AnalysisSession:
    """Serialize analysis runs for one wallet.

    With the ``ignore`` policy a call made during a run awaits and returns
    that run's result; its own arguments are dropped. With ``restart`` the
    running analysis is cancelled and replaced, and callers still waiting
    on it receive the replacement's result instead.
    """

    def __init__(self, analyzer: RebalanceAnalyzer, policy: str = "ignore") -> None:
        if policy not in RUN_POLICIES:
            raise ValueError(f"Unknown run policy '{policy}'")
        self._analyzer = analyzer
        self._policy = policy
        self._task: asyncio.Task[RebalanceAnalysis] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(
        self, positions: Sequence[YieldPosition], idle_balance: str = "0"
    ) -> RebalanceAnalysis:
        if self.running:
            if self._policy == "ignore":
                logger.info("Analysis already running, waiting for its result")
                return await self._follow()
            logger.info("Restarting in-flight analysis with new inputs")
            self._task.cancel()

        self._task = asyncio.ensure_future(
            self._analyzer.analyze(positions, idle_balance)
        )
        return await self._follow()

    async def _follow(self) -> RebalanceAnalysis:
        while True:
            task = self._task
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                # Superseded by a restart: wait on the replacement instead.
                if task.cancelled() and self._task is not task:
                    continue
                raise
