"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import Chain, ProtocolName, RiskTolerance

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Guardrails policy
# ---------------------------------------------------------------------------

# Fields each preset owns; applied together or not at all.
RISK_PROFILES: dict[RiskTolerance, dict[str, Any]] = {
    RiskTolerance.CONSERVATIVE: {
        "max_slippage": 0.3,
        "min_apy_delta": 2.0,
        "max_single_protocol_allocation": 25.0,
        "min_break_even_days": 20,
        "risk_tolerance": RiskTolerance.CONSERVATIVE,
    },
    RiskTolerance.MODERATE: {
        "max_slippage": 0.5,
        "min_apy_delta": 1.0,
        "max_single_protocol_allocation": 40.0,
        "min_break_even_days": 30,
        "risk_tolerance": RiskTolerance.MODERATE,
    },
    RiskTolerance.AGGRESSIVE: {
        "max_slippage": 1.0,
        "min_apy_delta": 0.5,
        "max_single_protocol_allocation": 60.0,
        "min_break_even_days": 45,
        "risk_tolerance": RiskTolerance.AGGRESSIVE,
    },
}


@dataclass(frozen=True)
class GuardrailsConfig:
    max_slippage: float = 0.5
    gas_ceiling: int = 100_000_000_000_000_000  # 0.1 ETH in wei
    min_apy_delta: float = 1.0
    max_single_protocol_allocation: float = 40.0
    blacklisted_protocols: frozenset[ProtocolName] = frozenset()
    # Upper bound on the break-even period, despite the name.
    min_break_even_days: int = 30
    risk_tolerance: RiskTolerance = RiskTolerance.MODERATE

    def with_risk_tolerance(self, tolerance: RiskTolerance | str) -> GuardrailsConfig:
        """Return a copy with the preset's profile fields overwritten."""
        return replace(self, **RISK_PROFILES[RiskTolerance(tolerance)])

    def updated(self, **changes: Any) -> GuardrailsConfig:
        return replace(self, **changes)


# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FeedConfig:
    url: str = "https://yields.llama.fi/pools"
    timeout: int = 30
    cache_ttl_seconds: float = 300.0
    min_tvl_usd: float = 100_000.0
    stablecoins: tuple[str, ...] = ("USDC", "USDT", "DAI", "USDB", "USDE")


@dataclass(frozen=True)
class ChainConfig:
    chain_id: int = 0
    rpc_url: str = ""
    native_symbol: str = "ETH"


@dataclass(frozen=True)
class ProtocolConfig:
    display_name: str = ""
    contracts: dict[Chain, str] = field(default_factory=dict)
    deposit_function: str = "deposit"
    withdraw_function: str = "withdraw"
    risk_score: int = 5
    audit_status: bool = False
    website: str = ""

    def contract_for(self, chain: Chain) -> str | None:
        return self.contracts.get(chain)


@dataclass(frozen=True)
class CostConfig:
    same_chain_gas_usd: float = 5.0
    cross_chain_gas_usd: float = 15.0
    bridge_fee_rate: float = 0.001
    slippage_rate: float = 0.0005
    use_gas_oracle: bool = False
    fallback_gas_price_gwei: float = 50.0
    fallback_native_price_usd: float = 3000.0
    price_url: str = "https://api.coingecko.com/api/v3/simple/price"


@dataclass(frozen=True)
class AnalysisConfig:
    top_opportunities: int = 10
    max_intents_per_position: int = 3
    check_interval_minutes: int = 15
    run_policy: str = "ignore"


@dataclass(frozen=True)
class ExecutionConfig:
    settle_delay_seconds: float = 3.0
    bridge_delay_seconds: float = 2.0
    decision_timeout_seconds: float = 120.0
    simulated_balances: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class WalletConfig:
    label: str = ""
    address: str = ""
    positions_file: str = ""


@dataclass(frozen=True)
class AppConfig:
    feed: FeedConfig = field(default_factory=FeedConfig)
    chains: dict[Chain, ChainConfig] = field(default_factory=dict)
    protocols: dict[ProtocolName, ProtocolConfig] = field(default_factory=dict)
    costs: CostConfig = field(default_factory=CostConfig)
    guardrails: GuardrailsConfig = field(default_factory=GuardrailsConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    wallets: tuple[WalletConfig, ...] = ()


# ---------------------------------------------------------------------------
# Built-in chain and protocol tables
# ---------------------------------------------------------------------------

DEFAULT_CHAINS: dict[Chain, ChainConfig] = {
    Chain.ETHEREUM: ChainConfig(1, "https://eth.llamarpc.com", "ETH"),
    Chain.POLYGON: ChainConfig(137, "https://polygon.llamarpc.com", "MATIC"),
    Chain.ARBITRUM: ChainConfig(42161, "https://arb1.arbitrum.io/rpc", "ETH"),
    Chain.OPTIMISM: ChainConfig(10, "https://mainnet.optimism.io", "ETH"),
    Chain.BASE: ChainConfig(8453, "https://mainnet.base.org", "ETH"),
}

DEFAULT_PROTOCOLS: dict[ProtocolName, ProtocolConfig] = {
    ProtocolName.AAVE: ProtocolConfig(
        display_name="Aave V3",
        contracts={
            Chain.ETHEREUM: "0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2",
            Chain.POLYGON: "0x794a61358D6845594F94dc1DB02A252b5b4814aD",
            Chain.ARBITRUM: "0x794a61358D6845594F94dc1DB02A252b5b4814aD",
        },
        deposit_function="supply",
        withdraw_function="withdraw",
        risk_score=2,
        audit_status=True,
        website="https://aave.com",
    ),
    ProtocolName.COMPOUND: ProtocolConfig(
        display_name="Compound V3",
        contracts={
            Chain.ETHEREUM: "0xc3d688B66703497DAA19211EEdff47f25384cdc3",
            Chain.POLYGON: "0xF25212E676D1F7F89Cd72fFEe66158f541246445",
            Chain.BASE: "0x9c4ec768c28520B50860ea7a15bd7213a9fF58bf",
        },
        deposit_function="supply",
        withdraw_function="withdraw",
        risk_score=3,
        audit_status=True,
        website="https://compound.finance",
    ),
    ProtocolName.YEARN: ProtocolConfig(
        display_name="Yearn Finance",
        contracts={
            Chain.ETHEREUM: "0xdA816459F1AB5631232FE5e97a05BBBb94970c95",
            Chain.POLYGON: "0xBFdD2E9C8C6D1A1D5D87BfAc4cae4907D6dBB0d7",
            Chain.ARBITRUM: "0x239e14A19DFF93a17339DCC444f74406C17f8E67",
        },
        deposit_function="deposit",
        withdraw_function="withdraw",
        risk_score=4,
        audit_status=True,
        website="https://yearn.finance",
    ),
    ProtocolName.CURVE: ProtocolConfig(
        display_name="Curve Finance",
        contracts={
            Chain.ETHEREUM: "0xbEbc44782C7dB0a1A60Cb6fe97d0b483032FF1C7",
            Chain.POLYGON: "0x445FE580eF8d70FF569aB36e80c647af338db351",
            Chain.ARBITRUM: "0x7f90122BF0700F9E7e1F688fe926940E8839F353",
        },
        deposit_function="add_liquidity",
        withdraw_function="remove_liquidity",
        risk_score=3,
        audit_status=True,
        website="https://curve.fi",
    ),
    ProtocolName.BEEFY: ProtocolConfig(
        display_name="Beefy Finance",
        contracts={
            Chain.POLYGON: "0x1A83524A07F4e36AcC87faaE3ded1cc95FFE4D33",
            Chain.ARBITRUM: "0xBfcbF6B01C19e213838EbfF58aA8d2A190eF77f8",
        },
        deposit_function="deposit",
        withdraw_function="withdraw",
        risk_score=5,
        audit_status=True,
        website="https://beefy.finance",
    ),
}


def default_config() -> AppConfig:
    """Config with the built-in chain and protocol tables and no wallets."""
    return AppConfig(chains=dict(DEFAULT_CHAINS), protocols=dict(DEFAULT_PROTOCOLS))


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def parse_chain(name: str) -> Chain:
    try:
        return Chain(str(name).lower())
    except ValueError:
        raise ValueError(f"Unknown chain '{name}'") from None


def parse_protocol(name: str) -> ProtocolName:
    for proto in ProtocolName:
        if proto.value.lower() == str(name).lower():
            return proto
    raise ValueError(f"Unknown protocol '{name}'")


def _build_feed(raw: dict[str, Any]) -> FeedConfig:
    defaults = FeedConfig()
    return FeedConfig(
        url=raw.get("url", defaults.url),
        timeout=int(raw.get("timeout", defaults.timeout)),
        cache_ttl_seconds=float(raw.get("cache_ttl_seconds", defaults.cache_ttl_seconds)),
        min_tvl_usd=float(raw.get("min_tvl_usd", defaults.min_tvl_usd)),
        stablecoins=tuple(
            s.upper() for s in raw.get("stablecoins", defaults.stablecoins)
        ),
    )


def _build_chains(raw: dict[str, Any]) -> dict[Chain, ChainConfig]:
    chains = dict(DEFAULT_CHAINS)
    for name, cfg in raw.items():
        chain = parse_chain(name)
        base = chains[chain]
        chains[chain] = ChainConfig(
            chain_id=int(cfg.get("chain_id", base.chain_id)),
            rpc_url=cfg.get("rpc_url", base.rpc_url),
            native_symbol=cfg.get("native_symbol", base.native_symbol),
        )
    return chains


def _build_protocols(raw: dict[str, Any]) -> dict[ProtocolName, ProtocolConfig]:
    protocols = dict(DEFAULT_PROTOCOLS)
    for name, cfg in raw.items():
        proto = parse_protocol(name)
        base = protocols.get(proto, ProtocolConfig(display_name=proto.value))
        contracts = dict(base.contracts)
        for chain_name, address in cfg.get("contracts", {}).items():
            contracts[parse_chain(chain_name)] = address
        protocols[proto] = ProtocolConfig(
            display_name=cfg.get("display_name", base.display_name),
            contracts=contracts,
            deposit_function=cfg.get("deposit_function", base.deposit_function),
            withdraw_function=cfg.get("withdraw_function", base.withdraw_function),
            risk_score=int(cfg.get("risk_score", base.risk_score)),
            audit_status=bool(cfg.get("audit_status", base.audit_status)),
            website=cfg.get("website", base.website),
        )
    return protocols


def _build_costs(raw: dict[str, Any]) -> CostConfig:
    d = CostConfig()
    return CostConfig(
        same_chain_gas_usd=float(raw.get("same_chain_gas_usd", d.same_chain_gas_usd)),
        cross_chain_gas_usd=float(raw.get("cross_chain_gas_usd", d.cross_chain_gas_usd)),
        bridge_fee_rate=float(raw.get("bridge_fee_rate", d.bridge_fee_rate)),
        slippage_rate=float(raw.get("slippage_rate", d.slippage_rate)),
        use_gas_oracle=bool(raw.get("use_gas_oracle", d.use_gas_oracle)),
        fallback_gas_price_gwei=float(
            raw.get("fallback_gas_price_gwei", d.fallback_gas_price_gwei)
        ),
        fallback_native_price_usd=float(
            raw.get("fallback_native_price_usd", d.fallback_native_price_usd)
        ),
        price_url=raw.get("price_url", d.price_url),
    )


def _build_guardrails(raw: dict[str, Any]) -> GuardrailsConfig:
    guardrails = GuardrailsConfig()
    # A preset goes first so explicit fields can still override it.
    if "risk_tolerance" in raw:
        tolerance = str(raw["risk_tolerance"]).lower()
        if tolerance not in {t.value for t in RiskTolerance}:
            raise ValueError(f"Unknown risk tolerance '{raw['risk_tolerance']}'")
        guardrails = guardrails.with_risk_tolerance(tolerance)

    changes: dict[str, Any] = {}
    if "max_slippage" in raw:
        changes["max_slippage"] = float(raw["max_slippage"])
    if "gas_ceiling" in raw:
        changes["gas_ceiling"] = int(raw["gas_ceiling"])
    if "min_apy_delta" in raw:
        changes["min_apy_delta"] = float(raw["min_apy_delta"])
    if "max_single_protocol_allocation" in raw:
        changes["max_single_protocol_allocation"] = float(
            raw["max_single_protocol_allocation"]
        )
    if "min_break_even_days" in raw:
        changes["min_break_even_days"] = int(raw["min_break_even_days"])
    if "blacklisted_protocols" in raw:
        changes["blacklisted_protocols"] = frozenset(
            parse_protocol(p) for p in raw["blacklisted_protocols"] or []
        )
    return guardrails.updated(**changes)


def _build_analysis(raw: dict[str, Any]) -> AnalysisConfig:
    d = AnalysisConfig()
    return AnalysisConfig(
        top_opportunities=int(raw.get("top_opportunities", d.top_opportunities)),
        max_intents_per_position=int(
            raw.get("max_intents_per_position", d.max_intents_per_position)
        ),
        check_interval_minutes=int(
            raw.get("check_interval_minutes", d.check_interval_minutes)
        ),
        run_policy=str(raw.get("run_policy", d.run_policy)).lower(),
    )


def _build_execution(raw: dict[str, Any]) -> ExecutionConfig:
    d = ExecutionConfig()
    return ExecutionConfig(
        settle_delay_seconds=float(raw.get("settle_delay_seconds", d.settle_delay_seconds)),
        bridge_delay_seconds=float(raw.get("bridge_delay_seconds", d.bridge_delay_seconds)),
        decision_timeout_seconds=float(
            raw.get("decision_timeout_seconds", d.decision_timeout_seconds)
        ),
        simulated_balances={
            str(k).upper(): float(v)
            for k, v in (raw.get("simulated_balances") or {}).items()
        },
    )


def _build_wallets(raw: list[dict[str, Any]]) -> tuple[WalletConfig, ...]:
    wallets: list[WalletConfig] = []
    for w in raw:
        wallets.append(
            WalletConfig(
                label=w.get("label", ""),
                address=w.get("address", ""),
                positions_file=w.get("positions_file", ""),
            )
        )
    return tuple(wallets)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        feed=_build_feed(raw.get("feed", {})),
        chains=_build_chains(raw.get("chains", {})),
        protocols=_build_protocols(raw.get("protocols", {})),
        costs=_build_costs(raw.get("costs", {})),
        guardrails=_build_guardrails(raw.get("guardrails", {})),
        analysis=_build_analysis(raw.get("analysis", {})),
        execution=_build_execution(raw.get("execution", {})),
        wallets=_build_wallets(raw.get("wallets", [])),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    for proto, proto_cfg in cfg.protocols.items():
        if not 1 <= proto_cfg.risk_score <= 10:
            raise ValueError(
                f"Protocol '{proto.value}' risk_score must be between 1 and 10"
            )

    g = cfg.guardrails
    if g.max_slippage < 0 or g.min_apy_delta < 0:
        raise ValueError("Guardrail slippage and APY delta bounds must be non-negative")
    if g.gas_ceiling < 0 or g.min_break_even_days < 0:
        raise ValueError("Guardrail gas ceiling and break-even bound must be non-negative")
    if not 0 <= g.max_single_protocol_allocation <= 100:
        raise ValueError("max_single_protocol_allocation must be a percentage (0-100)")

    if cfg.analysis.run_policy not in ("ignore", "restart"):
        raise ValueError(
            f"Unknown analysis run_policy '{cfg.analysis.run_policy}' "
            "(expected 'ignore' or 'restart')"
        )
    if cfg.analysis.max_intents_per_position < 1:
        raise ValueError("max_intents_per_position must be at least 1")

    for wallet in cfg.wallets:
        if not wallet.address:
            raise ValueError(f"Wallet '{wallet.label}' has no address")
