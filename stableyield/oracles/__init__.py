from .gas import CoinGeckoPriceOracle, MarketGasOracle, RpcGasOracle

__all__ = ["CoinGeckoPriceOracle", "MarketGasOracle", "RpcGasOracle"]
