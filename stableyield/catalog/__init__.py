"""Opportunity catalog: yield index client, record parser and cache."""
from .catalog import CACHE_KEY, OpportunityCatalog
from .defillama import DefiLlamaClient

__all__ = ["CACHE_KEY", "DefiLlamaClient", "OpportunityCatalog"]
