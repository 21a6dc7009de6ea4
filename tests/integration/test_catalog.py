"""Integration tests for the opportunity catalog — caching and stale fallback."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from stableyield.catalog import OpportunityCatalog
from stableyield.config import FeedConfig
from stableyield.errors import DataSourceError
from stableyield.models import ProtocolName


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def source(sample_pools: list[dict]) -> AsyncMock:
    mock = AsyncMock()
    mock.fetch_pools.return_value = sample_pools
    return mock


@pytest.fixture()
def catalog(
    source: AsyncMock, feed_config: FeedConfig, protocols: dict, clock: FakeClock
) -> OpportunityCatalog:
    return OpportunityCatalog(
        source, feed_config, protocols, clock=clock, now_ms=lambda: 42
    )


class TestFetchOpportunities:
    @pytest.mark.asyncio
    async def test_parses_and_filters(self, catalog: OpportunityCatalog) -> None:
        opps = await catalog.fetch_opportunities()
        assert [o.protocol for o in opps] == [ProtocolName.AAVE, ProtocolName.COMPOUND]
        assert all(o.last_updated == 42 for o in opps)

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_source(
        self, catalog: OpportunityCatalog, source: AsyncMock, clock: FakeClock
    ) -> None:
        first = await catalog.fetch_opportunities()
        clock.now += 299
        second = await catalog.fetch_opportunities()
        assert second is first
        source.fetch_pools.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_expired_cache_refreshes(
        self, catalog: OpportunityCatalog, source: AsyncMock, clock: FakeClock
    ) -> None:
        await catalog.fetch_opportunities()
        clock.now += 300
        await catalog.fetch_opportunities()
        assert source.fetch_pools.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(
        self, catalog: OpportunityCatalog, source: AsyncMock, sample_pools: list[dict]
    ) -> None:
        release = asyncio.Event()

        async def slow_fetch() -> list[dict]:
            await release.wait()
            return sample_pools

        source.fetch_pools.side_effect = slow_fetch

        callers = [asyncio.ensure_future(catalog.fetch_opportunities()) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*callers)

        source.fetch_pools.assert_awaited_once()
        assert all(r == results[0] for r in results)
        assert len(results[0]) == 2

    @pytest.mark.asyncio
    async def test_failure_without_cache_returns_empty(
        self, catalog: OpportunityCatalog, source: AsyncMock
    ) -> None:
        source.fetch_pools.side_effect = DataSourceError("HTTP 503")
        assert await catalog.fetch_opportunities() == ()

    @pytest.mark.asyncio
    async def test_failure_serves_stale_cache(
        self, catalog: OpportunityCatalog, source: AsyncMock, clock: FakeClock
    ) -> None:
        first = await catalog.fetch_opportunities()
        clock.now += 3600
        source.fetch_pools.side_effect = DataSourceError("HTTP 503")

        second = await catalog.fetch_opportunities()

        assert second == first
        assert source.fetch_pools.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_is_retried_next_call(
        self, catalog: OpportunityCatalog, source: AsyncMock, sample_pools: list[dict]
    ) -> None:
        source.fetch_pools.side_effect = [DataSourceError("down"), sample_pools]
        assert await catalog.fetch_opportunities() == ()
        assert len(await catalog.fetch_opportunities()) == 2

    @pytest.mark.asyncio
    async def test_clear_cache_forces_refetch(
        self, catalog: OpportunityCatalog, source: AsyncMock
    ) -> None:
        await catalog.fetch_opportunities()
        catalog.clear_cache()
        await catalog.fetch_opportunities()
        assert source.fetch_pools.await_count == 2
