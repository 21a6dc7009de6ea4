"""Mover protocol — withdraw/bridge/deposit execution capability."""
from typing import Protocol

from ..models import Chain, ProtocolName, RebalanceIntent, TxResult, YieldOpportunity


class Mover(Protocol):
    """Abstract interface for submitting rebalance transactions.

    Any call may fail; failures surface as ``ExecutionError``.
    """

    async def execute_deposit(
        self, intent: RebalanceIntent, address: str, token: str
    ) -> TxResult: ...

    async def execute_opportunity_deposit(
        self, opportunity: YieldOpportunity, amount: str, address: str
    ) -> TxResult:
        """Deposit idle wallet funds, bridging them to the opportunity's chain if needed."""
        ...

    async def execute_withdraw(
        self,
        chain: Chain,
        protocol: ProtocolName,
        contract_address: str,
        token: str,
        amount: str,
        address: str,
    ) -> TxResult: ...
