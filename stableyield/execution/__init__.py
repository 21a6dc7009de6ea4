from .approval import Decision, DecisionGate
from .calls import ContractCall, calls_for
from .executor import RebalanceExecutor
from .simulated import SimulatedMover, SimulationStore

__all__ = [
    "ContractCall",
    "Decision",
    "DecisionGate",
    "RebalanceExecutor",
    "SimulatedMover",
    "SimulationStore",
    "calls_for",
]
