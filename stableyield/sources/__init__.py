from .static import Holdings, StaticPositionSource, load_holdings, load_positions

__all__ = ["Holdings", "StaticPositionSource", "load_holdings", "load_positions"]
