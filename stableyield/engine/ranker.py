"""Opportunity ranking by risk- and liquidity-adjusted APY."""
from __future__ import annotations

from typing import Iterable

from ..models import YieldOpportunity

# TVL at which liquidity confidence saturates.
FULL_CONFIDENCE_TVL = 1_000_000
AUDIT_BONUS = 2.0


def opportunity_score(opportunity: YieldOpportunity) -> float:
    """apy * (1 - risk/10) * min(tvl / 1M, 1) + 2 if audited."""
    risk_multiplier = 1 - opportunity.risk_score / 10
    tvl_factor = min(opportunity.tvl / FULL_CONFIDENCE_TVL, 1.0)
    bonus = AUDIT_BONUS if opportunity.metadata.audit_status else 0.0
    return opportunity.apy * risk_multiplier * tvl_factor + bonus


def rank_opportunities(
    opportunities: Iterable[YieldOpportunity],
) -> list[YieldOpportunity]:
    """Best first. Equal scores keep their input order."""
    return sorted(opportunities, key=opportunity_score, reverse=True)
