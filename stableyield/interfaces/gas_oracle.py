"""Gas oracle protocol — gas and native token price abstraction."""
from typing import Protocol

from ..models import Chain


class GasOracle(Protocol):
    """Abstract interface for pricing transaction gas.

    Implementations fall back to conservative defaults instead of raising.
    """

    async def estimate_gas(self, chain: Chain, gas_units: int) -> int: ...

    async def get_native_token_price_usd(self, chain: Chain) -> float: ...
