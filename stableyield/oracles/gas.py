"""Gas price (JSON-RPC) and native token price (CoinGecko) oracles.

Both fall back to configured defaults rather than raising, so a flaky RPC
endpoint makes cost quotes conservative instead of failing the analysis.
"""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import ChainConfig, CostConfig
from ..errors import NetworkError
from ..models import Chain

logger = logging.getLogger(__name__)

WEI_PER_GWEI = 10**9

# CoinGecko ids for each native gas token symbol.
_COINGECKO_IDS: dict[str, str] = {
    "ETH": "ethereum",
    "MATIC": "matic-network",
    "POL": "matic-network",
}


def _connector() -> aiohttp.TCPConnector:
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    return aiohttp.TCPConnector(ssl=ssl_context)


class RpcGasOracle:
    """Read ``eth_gasPrice`` from each chain's RPC endpoint."""

    def __init__(
        self,
        chains: dict[Chain, ChainConfig],
        fallback_gas_price_gwei: float = 50.0,
        timeout: int = 10,
    ) -> None:
        self._chains = chains
        self._fallback_wei = int(fallback_gas_price_gwei * WEI_PER_GWEI)
        self._timeout = timeout

    async def _rpc_call(self, chain: Chain, method: str, params: list[Any]) -> Any:
        chain_cfg = self._chains.get(chain)
        if chain_cfg is None or not chain_cfg.rpc_url:
            raise NetworkError(f"No RPC endpoint configured for {chain.value}", chain)

        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            async with aiohttp.ClientSession(connector=_connector()) as session:
                async with session.post(
                    chain_cfg.rpc_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as response:
                    if response.status != 200:
                        raise NetworkError(
                            f"RPC returned HTTP {response.status}", chain
                        )
                    data = await response.json()
        except NetworkError:
            raise
        except Exception as e:
            raise NetworkError(f"RPC request failed: {e}", chain) from e

        if "error" in data:
            raise NetworkError(f"RPC error: {data['error']}", chain)
        return data.get("result")

    async def get_gas_price(self, chain: Chain) -> int:
        """Current gas price in wei, or the fallback price."""
        try:
            result = await self._rpc_call(chain, "eth_gasPrice", [])
            return int(result, 16)
        except (NetworkError, TypeError, ValueError) as e:
            logger.warning(
                "Gas price unavailable on %s, using %d wei: %s",
                chain.value,
                self._fallback_wei,
                e,
            )
            return self._fallback_wei

    async def estimate_gas(self, chain: Chain, gas_units: int) -> int:
        return gas_units * await self.get_gas_price(chain)


class CoinGeckoPriceOracle:
    """USD price of each chain's native gas token."""

    def __init__(
        self,
        chains: dict[Chain, ChainConfig],
        price_url: str,
        fallback_price_usd: float = 3000.0,
        timeout: int = 10,
    ) -> None:
        self._chains = chains
        self._price_url = price_url
        self._fallback = fallback_price_usd
        self._timeout = timeout

    def _coin_id(self, chain: Chain) -> str:
        chain_cfg = self._chains.get(chain)
        symbol = chain_cfg.native_symbol if chain_cfg else "ETH"
        return _COINGECKO_IDS.get(symbol.upper(), "ethereum")

    async def get_native_token_price_usd(self, chain: Chain) -> float:
        coin_id = self._coin_id(chain)
        params = {"ids": coin_id, "vs_currencies": "usd"}

        try:
            async with aiohttp.ClientSession(connector=_connector()) as session:
                async with session.get(
                    self._price_url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching %s price: HTTP %s", coin_id, response.status
                        )
                        return self._fallback
                    data = await response.json()
            return float(data[coin_id]["usd"])
        except Exception as e:
            logger.error("Error fetching %s price: %s", coin_id, e)
            return self._fallback


class MarketGasOracle:
    """GasOracle combining live gas prices with live native token prices."""

    def __init__(self, gas: RpcGasOracle, prices: CoinGeckoPriceOracle) -> None:
        self._gas = gas
        self._prices = prices

    @classmethod
    def from_config(
        cls, chains: dict[Chain, ChainConfig], costs: CostConfig
    ) -> MarketGasOracle:
        return cls(
            RpcGasOracle(chains, costs.fallback_gas_price_gwei),
            CoinGeckoPriceOracle(
                chains, costs.price_url, costs.fallback_native_price_usd
            ),
        )

    async def estimate_gas(self, chain: Chain, gas_units: int) -> int:
        return await self._gas.estimate_gas(chain, gas_units)

    async def get_native_token_price_usd(self, chain: Chain) -> float:
        return await self._prices.get_native_token_price_usd(chain)
