"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest

from stableyield.config import (
    DEFAULT_PROTOCOLS,
    AppConfig,
    CostConfig,
    FeedConfig,
    GuardrailsConfig,
    WalletConfig,
    default_config,
)
from stableyield.engine.costs import CostEstimator
from stableyield.models import (
    Chain,
    OpportunityMetadata,
    ProtocolName,
    YieldOpportunity,
    YieldPosition,
)

AAVE_ETH = "0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2"
AAVE_ARB = "0x794a61358D6845594F94dc1DB02A252b5b4814aD"
COMPOUND_ETH = "0xc3d688B66703497DAA19211EEdff47f25384cdc3"
WALLET = "0xWALLET000000000000000000000000000000001"


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def feed_config() -> FeedConfig:
    return FeedConfig(url="https://yields.example.com/pools", timeout=5)


@pytest.fixture()
def cost_config() -> CostConfig:
    return CostConfig()


@pytest.fixture()
def estimator(cost_config: CostConfig) -> CostEstimator:
    return CostEstimator(cost_config)


@pytest.fixture()
def guardrails() -> GuardrailsConfig:
    return GuardrailsConfig()


@pytest.fixture()
def lenient_guardrails() -> GuardrailsConfig:
    """Moderate preset with a break-even bound long enough for the scenario."""
    return GuardrailsConfig(min_break_even_days=365)


@pytest.fixture()
def protocols() -> dict:
    return dict(DEFAULT_PROTOCOLS)


@pytest.fixture()
def sample_app_config(feed_config: FeedConfig) -> AppConfig:
    base = default_config()
    return AppConfig(
        feed=feed_config,
        chains=base.chains,
        protocols=base.protocols,
        costs=base.costs,
        guardrails=GuardrailsConfig(min_break_even_days=365),
        analysis=base.analysis,
        execution=base.execution,
        wallets=(WalletConfig(label="test-wallet", address=WALLET),),
    )


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_opportunity() -> Callable[..., YieldOpportunity]:
    def _make(**overrides: Any) -> YieldOpportunity:
        fields: dict[str, Any] = dict(
            id="Aave-arbitrum-USDC-pool-1",
            protocol=ProtocolName.AAVE,
            chain=Chain.ARBITRUM,
            token="USDC",
            apy=6.1,
            tvl=5_000_000.0,
            risk_score=2,
            contract_address=AAVE_ARB,
            deposit_function="supply",
            withdraw_function="withdraw",
            last_updated=1_700_000_000_000,
            metadata=OpportunityMetadata(audit_status=True, time_in_market=400),
        )
        fields.update(overrides)
        return YieldOpportunity(**fields)

    return _make


@pytest.fixture()
def make_position() -> Callable[..., YieldPosition]:
    def _make(**overrides: Any) -> YieldPosition:
        fields: dict[str, Any] = dict(
            id="pos-aave-eth-usdc",
            protocol=ProtocolName.AAVE,
            chain=Chain.ETHEREUM,
            token="USDC",
            deposited_amount="5000",
            current_value="5000",
            apy=4.0,
            contract_address=AAVE_ETH,
        )
        fields.update(overrides)
        return YieldPosition(**fields)

    return _make


@pytest.fixture()
def sample_position(make_position: Callable[..., YieldPosition]) -> YieldPosition:
    return make_position()


@pytest.fixture()
def sample_opportunity(
    make_opportunity: Callable[..., YieldOpportunity],
) -> YieldOpportunity:
    return make_opportunity()


# ---------------------------------------------------------------------------
# Raw yield index data
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_pool() -> Callable[..., dict]:
    def _make(**overrides: Any) -> dict:
        pool: dict[str, Any] = {
            "pool": "pool-1",
            "project": "aave-v3",
            "chain": "Arbitrum",
            "symbol": "USDC",
            "tvlUsd": 5_000_000,
            "apy": 6.1,
            "count": 400,
        }
        pool.update(overrides)
        return pool

    return _make


@pytest.fixture()
def sample_pools(make_pool: Callable[..., dict]) -> list[dict]:
    return [
        make_pool(),
        make_pool(pool="pool-2", project="compound-v3", chain="Ethereum", apy=5.0),
        # filtered: unsupported protocol
        make_pool(pool="pool-3", project="uniswap-v3", apy=20.0),
        # filtered: not a stablecoin
        make_pool(pool="pool-4", symbol="WETH", apy=3.0),
        # filtered: TVL below minimum
        make_pool(pool="pool-5", tvlUsd=99_999),
    ]


# ---------------------------------------------------------------------------
# YAML fixtures
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    feed:
      url: https://yields.example.com/pools
      cache_ttl_seconds: 60
      min_tvl_usd: 250000
      stablecoins: [usdc, usdt]
    chains:
      arbitrum:
        rpc_url: https://arb.example.com
    protocols:
      beefy:
        risk_score: 7
        contracts:
          base: "0xBEEF"
    costs:
      cross_chain_gas_usd: 20
      use_gas_oracle: false
    guardrails:
      risk_tolerance: conservative
      max_slippage: 0.4
      blacklisted_protocols: [curve]
    analysis:
      top_opportunities: 5
      run_policy: restart
    execution:
      settle_delay_seconds: 0
      simulated_balances: {usdc: 90, dai: 5}
    wallets:
      - label: test-wallet
        address: "0xTEST"
        positions_file: positions.yaml
""")

SAMPLE_POSITIONS_YAML = textwrap.dedent("""\
    positions:
      - id: aave-eth-usdc
        protocol: aave
        chain: ethereum
        token: usdc
        deposited_amount: "5000"
        current_value: "5012.50"
        apy: 4.0
        contract_address: "0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2"
      - protocol: Compound
        chain: Ethereum
        token: USDT
        deposited_amount: 1000
        apy: 3.0
    balances:
      - token: USDC
        breakdown:
          - chain: arbitrum
            amount: "750"
            value_usd: 750
          - chain: ethereum
            amount: "5012.50"
            in_yield_protocol: true
            protocol: aave
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


@pytest.fixture()
def sample_positions_path(tmp_path: Path) -> Path:
    path = tmp_path / "positions.yaml"
    path.write_text(SAMPLE_POSITIONS_YAML)
    return path
