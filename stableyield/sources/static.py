"""Positions and balances read from a YAML file."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ..config import parse_chain, parse_protocol
from ..errors import DataSourceError
from ..models import ChainBalance, StableBalance, YieldPosition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Holdings:
    positions: tuple[YieldPosition, ...] = ()
    balances: tuple[StableBalance, ...] = ()


def _amount(raw: dict[str, Any], key: str, default: str | None = None) -> str:
    value = raw.get(key, default)
    if value is None:
        raise ValueError(f"Missing '{key}'")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{key}' is not a number: {value!r}") from None
    if not parsed.is_finite() or parsed < 0:
        raise ValueError(f"'{key}' must be a non-negative number: {value!r}")
    return str(value)


def _build_position(raw: dict[str, Any], index: int) -> YieldPosition:
    protocol = parse_protocol(raw["protocol"])
    chain = parse_chain(raw["chain"])
    token = str(raw["token"]).upper()
    deposited = _amount(raw, "deposited_amount")
    current = _amount(raw, "current_value", deposited)
    earned = raw.get("earned_yield")
    if earned is None:
        earned = str(Decimal(current) - Decimal(deposited))
    return YieldPosition(
        id=str(raw.get("id") or f"{protocol.value.lower()}-{chain.value}-{token.lower()}-{index}"),
        protocol=protocol,
        chain=chain,
        token=token,
        deposited_amount=deposited,
        current_value=current,
        apy=float(raw["apy"]),
        earned_yield=str(earned),
        deposit_timestamp=int(raw.get("deposit_timestamp", 0)),
        contract_address=str(raw.get("contract_address", "")),
    )


def _build_balance(raw: dict[str, Any]) -> StableBalance:
    breakdown = tuple(
        ChainBalance(
            chain=parse_chain(part["chain"]),
            amount=_amount(part, "amount"),
            value_usd=float(part.get("value_usd", part["amount"])),
            in_yield_protocol=bool(part.get("in_yield_protocol", False)),
            protocol=parse_protocol(part["protocol"]) if part.get("protocol") else None,
        )
        for part in raw.get("breakdown", [])
    )
    if "total_amount" in raw:
        total = _amount(raw, "total_amount")
    else:
        total = str(sum((Decimal(p.amount) for p in breakdown), Decimal(0)))
    return StableBalance(
        token=str(raw["token"]).upper(),
        total_amount=total,
        total_value_usd=float(raw.get("total_value_usd", total)),
        breakdown=breakdown,
    )


def load_holdings(path: str | Path) -> Holdings:
    """Read ``positions`` and ``balances`` lists from a YAML file.

    Raises:
        FileNotFoundError: when the file does not exist.
        ValueError: when an entry is missing a field or has a bad value.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Positions file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    try:
        positions = tuple(
            _build_position(entry, i) for i, entry in enumerate(raw.get("positions", []))
        )
        balances = tuple(_build_balance(entry) for entry in raw.get("balances", []))
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed entry in {path}: {e}") from e

    logger.info(
        "Loaded %d positions and %d balances from %s", len(positions), len(balances), path
    )
    return Holdings(positions, balances)


def load_positions(path: str | Path) -> tuple[YieldPosition, ...]:
    return load_holdings(path).positions


class StaticPositionSource:
    """PositionSource serving per-wallet holdings files.

    ``files`` maps a wallet address to its YAML file. Files are read on
    every call so edits show up on the next analysis.
    """

    def __init__(self, files: dict[str, str | Path]) -> None:
        self._files = {address.lower(): Path(p) for address, p in files.items()}

    def _load(self, address: str) -> Holdings:
        path = self._files.get(address.lower())
        if path is None:
            return Holdings()
        try:
            return load_holdings(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise DataSourceError(f"Cannot read holdings for {address}: {e}") from e

    async def fetch_positions(self, address: str) -> list[YieldPosition]:
        return list(self._load(address).positions)

    async def fetch_balances(self, address: str) -> list[StableBalance]:
        return list(self._load(address).balances)
