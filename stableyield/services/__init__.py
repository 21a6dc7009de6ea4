"""Service modules"""
from .optimizer import YieldOptimizer
from .session import AnalysisSession

__all__ = ["AnalysisSession", "YieldOptimizer"]
