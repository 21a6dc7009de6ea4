"""Cost estimation for moving a position between chains/protocols."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import CostConfig
from ..interfaces.gas_oracle import GasOracle
from ..models import Chain, CostEstimate
from .calculations import parse_amount, to_money

logger = logging.getLogger(__name__)

WEI_PER_NATIVE = 10**18

# Gas units per rebalance leg.
WITHDRAW_GAS_UNITS = 200_000
BRIDGE_GAS_UNITS = 150_000
DEPOSIT_GAS_UNITS = 250_000


@dataclass(frozen=True)
class GasQuote:
    """Oracle-priced gas for one move.

    ``wei`` is the whole bill in the source chain's native token.
    """

    usd: float
    wei: int


@dataclass(frozen=True)
class RawCost:
    """Unrounded cost terms in USD, plus the gas bill in wei."""

    gas_fee: float
    bridge_fee: float
    slippage: float
    gas_fee_wei: int = 0

    @property
    def total(self) -> float:
        return self.gas_fee + self.bridge_fee + self.slippage

    def to_estimate(self) -> CostEstimate:
        return CostEstimate(
            gas_fee=to_money(self.gas_fee),
            bridge_fee=to_money(self.bridge_fee),
            slippage=to_money(self.slippage),
            total_cost_usd=to_money(self.total),
            gas_fee_wei=self.gas_fee_wei,
        )


class CostEstimator:
    """Estimate gas, bridge fee and slippage for a move of ``amount``.

    Gas is a flat USD figure (higher across chains) unless the caller passes
    an oracle-priced ``gas_fee_usd``. Bridge fee applies only across chains.
    Without an oracle wei figure, the USD gas bill is converted to wei at
    the configured fallback native token price.
    """

    def __init__(self, config: CostConfig) -> None:
        self._config = config

    def gas_fee_usd(self, from_chain: Chain, to_chain: Chain) -> float:
        if from_chain == to_chain:
            return self._config.same_chain_gas_usd
        return self._config.cross_chain_gas_usd

    def gas_fee_wei(self, gas_fee_usd: float) -> int:
        price = self._config.fallback_native_price_usd
        if price <= 0:
            return 0
        return round(gas_fee_usd / price * WEI_PER_NATIVE)

    def estimate_cost_raw(
        self,
        from_chain: Chain,
        to_chain: Chain,
        amount: str | float,
        gas_fee_usd: float | None = None,
        gas_fee_wei: int | None = None,
    ) -> RawCost:
        value = parse_amount(amount)
        gas = self.gas_fee_usd(from_chain, to_chain) if gas_fee_usd is None else gas_fee_usd
        wei = self.gas_fee_wei(gas) if gas_fee_wei is None else gas_fee_wei
        bridge = 0.0 if from_chain == to_chain else value * self._config.bridge_fee_rate
        slippage = value * self._config.slippage_rate
        return RawCost(gas_fee=gas, bridge_fee=bridge, slippage=slippage, gas_fee_wei=wei)

    def estimate_cost(
        self,
        from_chain: Chain,
        to_chain: Chain,
        amount: str | float,
        gas_fee_usd: float | None = None,
        gas_fee_wei: int | None = None,
    ) -> CostEstimate:
        return self.estimate_cost_raw(
            from_chain, to_chain, amount, gas_fee_usd, gas_fee_wei
        ).to_estimate()


async def quote_gas_fee(
    oracle: GasOracle, from_chain: Chain, to_chain: Chain
) -> GasQuote:
    """Price withdraw + (bridge) + deposit gas through ``oracle``."""
    source_units = WITHDRAW_GAS_UNITS
    if from_chain != to_chain:
        source_units += BRIDGE_GAS_UNITS

    source_wei = await oracle.estimate_gas(from_chain, source_units)
    target_wei = await oracle.estimate_gas(to_chain, DEPOSIT_GAS_UNITS)
    source_price = await oracle.get_native_token_price_usd(from_chain)
    target_price = await oracle.get_native_token_price_usd(to_chain)

    cost = (
        source_wei / WEI_PER_NATIVE * source_price
        + target_wei / WEI_PER_NATIVE * target_price
    )
    # Target-chain gas restated in source-chain wei.
    if source_price > 0:
        total_wei = source_wei + round(target_wei * target_price / source_price)
    else:
        total_wei = source_wei + target_wei
    logger.debug(
        "Gas quote %s -> %s: $%.4f (%d wei)",
        from_chain.value,
        to_chain.value,
        cost,
        total_wei,
    )
    return GasQuote(usd=cost, wei=total_wei)
