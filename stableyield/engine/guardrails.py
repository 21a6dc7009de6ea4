"""Guardrails policy — pure pass/fail checks on proposed moves.

Every check is always evaluated so a blocked move reports all of its
reasons. A check whose input cannot be read fails with a message saying
so; nothing here raises.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from ..config import GuardrailsConfig
from ..models import (
    GuardrailCheck,
    GuardrailRule,
    ProtocolName,
    RebalanceIntent,
    YieldOpportunity,
)

# APY deltas are compared at this precision so 6.1 - 4.0 reads as 2.1.
_APY_PRECISION = 8


def _to_decimal(value: str) -> Decimal | None:
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def check_max_slippage(intent: RebalanceIntent, config: GuardrailsConfig) -> GuardrailCheck:
    """Slippage as a percentage of the moved amount vs ``max_slippage``."""
    slippage = _to_decimal(intent.estimated_cost.slippage)
    amount = _to_decimal(intent.source.amount)
    if slippage is None or amount is None or amount <= 0:
        return GuardrailCheck(
            rule=GuardrailRule.MAX_SLIPPAGE,
            passed=False,
            value=intent.estimated_cost.slippage,
            threshold=config.max_slippage,
            message=(
                f"Cannot compute slippage from {intent.estimated_cost.slippage!r} "
                f"on amount {intent.source.amount!r}"
            ),
        )

    pct = float(slippage / amount * 100)
    return GuardrailCheck(
        rule=GuardrailRule.MAX_SLIPPAGE,
        passed=pct <= config.max_slippage,
        value=round(pct, 4),
        threshold=config.max_slippage,
        message=f"Slippage: {pct:.2f}% (max: {config.max_slippage}%)",
    )


def check_gas_ceiling(intent: RebalanceIntent, config: GuardrailsConfig) -> GuardrailCheck:
    """Gas bill in native wei vs ``gas_ceiling``."""
    cost = intent.estimated_cost
    if _to_decimal(cost.gas_fee) is None:
        return GuardrailCheck(
            rule=GuardrailRule.GAS_CEILING,
            passed=False,
            value=cost.gas_fee,
            threshold=str(config.gas_ceiling),
            message=f"Cannot read gas fee {cost.gas_fee!r}",
        )

    return GuardrailCheck(
        rule=GuardrailRule.GAS_CEILING,
        passed=cost.gas_fee_wei <= config.gas_ceiling,
        value=str(cost.gas_fee_wei),
        threshold=str(config.gas_ceiling),
        message=(
            f"Gas fee: ${cost.gas_fee} ({cost.gas_fee_wei} wei, "
            f"max: {config.gas_ceiling} wei)"
        ),
    )


def _apy_delta_check(delta: float, config: GuardrailsConfig) -> GuardrailCheck:
    delta = round(delta, _APY_PRECISION)
    return GuardrailCheck(
        rule=GuardrailRule.MIN_APY_DELTA,
        passed=delta >= config.min_apy_delta,
        value=delta,
        threshold=config.min_apy_delta,
        message=f"APY improvement: {delta:.2f}% (min: {config.min_apy_delta}%)",
    )


def check_min_apy_delta(intent: RebalanceIntent, config: GuardrailsConfig) -> GuardrailCheck:
    return _apy_delta_check(intent.target.expected_apy - intent.source.apy, config)


def _blacklist_check(protocol: ProtocolName, config: GuardrailsConfig) -> GuardrailCheck:
    blacklisted = protocol in config.blacklisted_protocols
    return GuardrailCheck(
        rule=GuardrailRule.PROTOCOL_BLACKLIST,
        passed=not blacklisted,
        value=protocol.value,
        threshold="Not blacklisted",
        message=(
            f"Protocol {protocol.value} is blacklisted"
            if blacklisted
            else "Protocol is allowed"
        ),
    )


def check_protocol_blacklist(
    intent: RebalanceIntent, config: GuardrailsConfig
) -> GuardrailCheck:
    return _blacklist_check(intent.target.protocol, config)


def check_break_even_days(
    intent: RebalanceIntent, config: GuardrailsConfig
) -> GuardrailCheck:
    days = intent.net_benefit.break_even_days
    if days is None:
        return GuardrailCheck(
            rule=GuardrailRule.MIN_BREAKEVEN_DAYS,
            passed=False,
            value=None,
            threshold=config.min_break_even_days,
            message=(
                "Move never breaks even "
                f"(max: {config.min_break_even_days} days)"
            ),
        )
    return GuardrailCheck(
        rule=GuardrailRule.MIN_BREAKEVEN_DAYS,
        passed=days <= config.min_break_even_days,
        value=days,
        threshold=config.min_break_even_days,
        message=f"Break-even in {days} days (max: {config.min_break_even_days} days)",
    )


def check_protocol_allocation(
    total_allocation: float, config: GuardrailsConfig
) -> GuardrailCheck:
    return GuardrailCheck(
        rule=GuardrailRule.MAX_PROTOCOL_ALLOCATION,
        passed=total_allocation <= config.max_single_protocol_allocation,
        value=round(total_allocation, 4),
        threshold=config.max_single_protocol_allocation,
        message=(
            f"Protocol allocation: {total_allocation:.2f}% "
            f"(max: {config.max_single_protocol_allocation}%)"
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

_INTENT_CHECKS = (
    check_max_slippage,
    check_gas_ceiling,
    check_min_apy_delta,
    check_protocol_blacklist,
    check_break_even_days,
)


def evaluate_intent(
    intent: RebalanceIntent, config: GuardrailsConfig
) -> tuple[GuardrailCheck, ...]:
    """Run every intent-level check, in a fixed order."""
    return tuple(check(intent, config) for check in _INTENT_CHECKS)


def evaluate_opportunity(
    opportunity: YieldOpportunity,
    current_apy: float,
    total_allocation: float,
    config: GuardrailsConfig,
) -> tuple[GuardrailCheck, ...]:
    """Screen an opportunity before any intent exists for it."""
    return (
        _apy_delta_check(opportunity.apy - current_apy, config),
        check_protocol_allocation(total_allocation, config),
        _blacklist_check(opportunity.protocol, config),
    )
