"""Position source protocol — wallet positions and unified balances."""
from typing import Protocol

from ..models import StableBalance, YieldPosition


class PositionSource(Protocol):
    """Abstract interface for reading a wallet's yield positions and balances."""

    async def fetch_positions(self, address: str) -> list[YieldPosition]: ...

    async def fetch_balances(self, address: str) -> list[StableBalance]: ...
