"""Opportunity catalog — cached, normalized view of the yield index."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..config import FeedConfig, ProtocolConfig
from ..interfaces.yield_source import YieldSource
from ..models import ProtocolName, YieldOpportunity
from . import parser

logger = logging.getLogger(__name__)

CACHE_KEY = "yield_opportunities"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class _CacheEntry:
    data: tuple[YieldOpportunity, ...]
    fetched_at: float


class OpportunityCatalog:
    """Normalize, filter and cache yield opportunities.

    Reads are read-through and single-flight: while a refresh is running,
    every caller awaits that same refresh instead of starting another.
    A failed refresh falls back to the last cached list (even if stale),
    or to an empty tuple when nothing has been cached yet.
    """

    def __init__(
        self,
        source: YieldSource,
        feed: FeedConfig,
        protocols: dict[ProtocolName, ProtocolConfig],
        clock: Callable[[], float] = time.monotonic,
        now_ms: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._source = source
        self._feed = feed
        self._protocols = protocols
        self._clock = clock
        self._now_ms = now_ms
        self._cache: dict[str, _CacheEntry] = {}
        self._inflight: dict[str, asyncio.Future[tuple[YieldOpportunity, ...]]] = {}

    def _is_fresh(self, entry: _CacheEntry) -> bool:
        return self._clock() - entry.fetched_at < self._feed.cache_ttl_seconds

    async def fetch_opportunities(self) -> tuple[YieldOpportunity, ...]:
        """Return supported stablecoin opportunities. Never raises."""
        cached = self._cache.get(CACHE_KEY)
        if cached is not None and self._is_fresh(cached):
            logger.debug("Returning cached yield data")
            return cached.data

        refresh = self._inflight.get(CACHE_KEY)
        if refresh is None:
            refresh = asyncio.ensure_future(self._refresh(CACHE_KEY))
            self._inflight[CACHE_KEY] = refresh
            refresh.add_done_callback(lambda _: self._inflight.pop(CACHE_KEY, None))

        # Shielded so one cancelled caller does not abort the shared refresh.
        return await asyncio.shield(refresh)

    async def _refresh(self, key: str) -> tuple[YieldOpportunity, ...]:
        try:
            logger.info("Fetching fresh yield data")
            pools = await self._source.fetch_pools()
            opportunities = tuple(
                parser.parse_pools(pools, self._protocols, self._feed, self._now_ms())
            )
        except Exception as e:
            stale = self._cache.get(key)
            if stale is not None:
                logger.warning(
                    "Error fetching yield data, serving %d cached opportunities: %s",
                    len(stale.data),
                    e,
                )
                return stale.data
            logger.error("Error fetching yield data and no cache available: %s", e)
            return ()

        self._cache[key] = _CacheEntry(data=opportunities, fetched_at=self._clock())
        logger.info("Fetched %d yield opportunities", len(opportunities))
        return opportunities

    def clear_cache(self) -> None:
        self._cache.clear()
