"""Protocol interfaces for the external collaborators of the engine."""
from .gas_oracle import GasOracle
from .mover import Mover
from .position_source import PositionSource
from .yield_source import YieldSource

__all__ = ["GasOracle", "Mover", "PositionSource", "YieldSource"]
