"""Pure parsing functions for yield index pool records — no I/O."""
from __future__ import annotations

import logging
import re
from typing import Any

from ..config import FeedConfig, ProtocolConfig
from ..models import Chain, OpportunityMetadata, ProtocolName, YieldOpportunity

logger = logging.getLogger(__name__)

# Checked in order; the first substring hit wins.
_PROTOCOL_KEYWORDS: tuple[tuple[str, ProtocolName], ...] = (
    ("aave", ProtocolName.AAVE),
    ("compound", ProtocolName.COMPOUND),
    ("yearn", ProtocolName.YEARN),
    ("curve", ProtocolName.CURVE),
    ("beefy", ProtocolName.BEEFY),
)


def map_protocol_name(project: str) -> ProtocolName | None:
    """Fuzzy-match an index project slug to a supported protocol.

    Examples:
        "aave-v3" → Aave
        "compound-v3" → Compound
        "uniswap-v3" → None
    """
    project_lower = project.lower()
    for keyword, protocol in _PROTOCOL_KEYWORDS:
        if keyword in project_lower:
            return protocol
    return None


def map_chain_name(chain: str) -> Chain | None:
    """Exact (case-insensitive) match against the supported chains."""
    try:
        return Chain(chain.lower())
    except ValueError:
        return None


def is_stablecoin(symbol: str, stablecoins: tuple[str, ...]) -> bool:
    symbol_upper = symbol.upper()
    return any(stable in symbol_upper for stable in stablecoins)


# Bridged variants whose symbol would otherwise hit a different allowlist entry.
_TOKEN_ALIASES: dict[str, str] = {
    "USDBC": "USDC",
}

_SYMBOL_SEPARATORS = re.compile(r"[-./ ]+")


def map_token_symbol(symbol: str, stablecoins: tuple[str, ...]) -> str:
    """Return the allowlisted stablecoin a pool symbol stands for.

    The symbol is split on ``-``, ``.``, ``/`` and spaces. A part equal to
    an allowlisted token (after aliasing) wins, in allowlist order; failing
    that, the first allowlisted token contained anywhere in the symbol.

    Examples:
        "USDC" → "USDC"
        "USDC.E" → "USDC"
        "USDbC" → "USDC"
        "DAI-USDT" → "USDT" when USDT precedes DAI in the allowlist
        "sUSDe" → "USDE"
    """
    symbol_upper = symbol.upper()
    parts = {
        _TOKEN_ALIASES.get(part, part)
        for part in _SYMBOL_SEPARATORS.split(symbol_upper)
        if part
    }
    for stable in stablecoins:
        if stable in parts:
            return stable
    for stable in stablecoins:
        if stable in symbol_upper:
            return stable
    return symbol_upper


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_pool(
    pool: dict[str, Any],
    protocols: dict[ProtocolName, ProtocolConfig],
    feed: FeedConfig,
    now_ms: int,
) -> YieldOpportunity | None:
    """Turn one raw pool record into an opportunity, or None if it is filtered.

    A record survives when its project maps to a supported protocol, its
    chain is supported, the protocol has a contract on that chain, its
    symbol is an allowlisted stablecoin, ``tvlUsd >= min_tvl_usd`` and
    ``apy > 0``.
    """
    protocol = map_protocol_name(str(pool.get("project", "")))
    if protocol is None:
        return None

    chain = map_chain_name(str(pool.get("chain", "")))
    if chain is None:
        return None

    protocol_cfg = protocols.get(protocol)
    if protocol_cfg is None:
        return None
    contract_address = protocol_cfg.contract_for(chain)
    if not contract_address:
        return None

    symbol = str(pool.get("symbol", ""))
    if not is_stablecoin(symbol, feed.stablecoins):
        return None

    tvl = _to_float(pool.get("tvlUsd"))
    apy = _to_float(pool.get("apy"))
    if tvl is None or apy is None:
        logger.debug("Skipping malformed pool record %s", pool.get("pool"))
        return None
    if tvl < feed.min_tvl_usd or apy <= 0:
        return None

    token = map_token_symbol(symbol, feed.stablecoins)
    pool_id = str(pool.get("pool", ""))

    return YieldOpportunity(
        id=f"{protocol.value}-{chain.value}-{symbol}-{pool_id}",
        protocol=protocol,
        chain=chain,
        token=token,
        apy=apy,
        tvl=tvl,
        risk_score=protocol_cfg.risk_score,
        contract_address=contract_address,
        deposit_function=protocol_cfg.deposit_function,
        withdraw_function=protocol_cfg.withdraw_function,
        last_updated=now_ms,
        metadata=OpportunityMetadata(
            audit_status=protocol_cfg.audit_status,
            # The index reports one datapoint per day of pool history.
            time_in_market=int(_to_float(pool.get("count")) or 0),
            historical_exploits=0,
        ),
    )


def parse_pools(
    pools: list[dict[str, Any]],
    protocols: dict[ProtocolName, ProtocolConfig],
    feed: FeedConfig,
    now_ms: int,
) -> list[YieldOpportunity]:
    opportunities: list[YieldOpportunity] = []
    for pool in pools:
        if not isinstance(pool, dict):
            continue
        opportunity = parse_pool(pool, protocols, feed, now_ms)
        if opportunity is not None:
            opportunities.append(opportunity)
    return opportunities
