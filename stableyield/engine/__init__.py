"""Rebalance decision engine: ranking, costs, guardrails, synthesis, analysis."""
from .analyzer import RebalanceAnalyzer
from .costs import CostEstimator
from .guardrails import evaluate_intent, evaluate_opportunity
from .ranker import opportunity_score, rank_opportunities
from .synthesizer import IntentSynthesizer

__all__ = [
    "CostEstimator",
    "IntentSynthesizer",
    "RebalanceAnalyzer",
    "evaluate_intent",
    "evaluate_opportunity",
    "opportunity_score",
    "rank_opportunities",
]
