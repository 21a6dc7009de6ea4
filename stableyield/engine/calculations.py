"""Portfolio arithmetic shared by the engine — pure functions, no I/O."""
from __future__ import annotations

import math
from typing import Iterable

from ..models import ProtocolName, YieldPosition

DAYS_PER_YEAR = 365


def to_money(value: float) -> str:
    """Round a USD amount to its 2-dp decimal string form."""
    return f"{value:.2f}"


def parse_amount(value: str | float | int) -> float:
    return float(value)


def calc_weighted_apy(positions: Iterable[YieldPosition]) -> float:
    """Value-weighted average APY; zero-value positions carry no weight."""
    total_value = 0.0
    weighted_sum = 0.0
    for pos in positions:
        value = parse_amount(pos.current_value)
        if value <= 0:
            continue
        total_value += value
        weighted_sum += value * pos.apy
    if total_value == 0:
        return 0.0
    return weighted_sum / total_value


def calc_yearly_gain(principal: float, apy_delta: float) -> float:
    return principal * (apy_delta / 100)


def calc_break_even_days(total_cost: float, yearly_gain: float) -> int | None:
    """Days of improved yield needed to pay back ``total_cost``.

    Returns None when the gain is not positive: the move never breaks even.
    """
    if yearly_gain <= 0:
        return None
    return math.ceil(total_cost / yearly_gain * DAYS_PER_YEAR)


def calc_total_value(positions: Iterable[YieldPosition]) -> float:
    return sum(parse_amount(p.current_value) for p in positions)


def calc_total_yield(positions: Iterable[YieldPosition]) -> float:
    return sum(parse_amount(p.earned_yield) for p in positions)


def calc_protocol_allocation(
    positions: Iterable[YieldPosition], protocol: ProtocolName
) -> float:
    """Percentage of portfolio value currently held in ``protocol``."""
    positions = list(positions)
    total = calc_total_value(positions)
    if total <= 0:
        return 0.0
    in_protocol = sum(
        parse_amount(p.current_value) for p in positions if p.protocol == protocol
    )
    return in_protocol / total * 100


def calc_diversification_score(positions: Iterable[YieldPosition]) -> float:
    """Unique protocols per position, as a percentage (100 = fully spread)."""
    positions = list(positions)
    if not positions:
        return 0.0
    unique = len({p.protocol for p in positions})
    return unique / len(positions) * 100
