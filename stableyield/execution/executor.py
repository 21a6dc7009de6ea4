"""Rebalance execution: withdraw, optional bridge wait, deposit. Idle-fund deposits."""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable

from ..config import ExecutionConfig
from ..errors import ExecutionError, GuardrailError, InsufficientBalanceError
from ..interfaces.mover import Mover
from ..models import (
    ExecutionResult,
    IntentStatus,
    RebalanceIntent,
    TxResult,
    YieldOpportunity,
    YieldPosition,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _decimal(value: str, label: str) -> Decimal:
    try:
        parsed = Decimal(value)
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid {label}: {value!r}") from None
    if not parsed.is_finite() or parsed <= 0:
        raise ValueError(f"Invalid {label}: {value!r}")
    return parsed


def check_amount(amount: str, position: YieldPosition) -> None:
    """Raise InsufficientBalanceError when ``amount`` exceeds the principal."""
    requested = _decimal(amount, "amount")
    available = Decimal(position.deposited_amount)
    if requested > available:
        raise InsufficientBalanceError(
            f"Cannot move {amount} {position.token} out of position {position.id}",
            required=amount,
            available=position.deposited_amount,
        )


class RebalanceExecutor:
    """Drive one approved intent through a Mover.

    There is no retry: a failure marks the intent ``failed`` and surfaces
    as ``ExecutionError``. Funds already withdrawn stay in the wallet on
    the source or target chain; the withdraw hash on the error says where.
    """

    def __init__(
        self,
        mover: Mover,
        config: ExecutionConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._mover = mover
        self._config = config or ExecutionConfig()
        self._sleep = sleep

    def validate(
        self, intent: RebalanceIntent, position: YieldPosition | None = None
    ) -> None:
        failed = intent.failed_checks
        if failed:
            check = failed[0]
            raise GuardrailError(
                check.message, check.rule.value, check.value, check.threshold
            )
        if intent.status is not IntentStatus.APPROVED:
            raise GuardrailError(
                f"Intent {intent.id} is {intent.status.value}, not approved",
                "status",
                intent.status.value,
                IntentStatus.APPROVED.value,
            )
        if position is not None:
            check_amount(intent.source.amount, position)

    async def execute_rebalance(
        self,
        intent: RebalanceIntent,
        address: str,
        token: str,
        position: YieldPosition | None = None,
    ) -> ExecutionResult:
        self.validate(intent, position)

        executing = intent.with_status(IntentStatus.EXECUTING)
        source, target = executing.source, executing.target
        steps: list[str] = []
        logger.info(
            "Executing %s: %s %s on %s/%s -> %s/%s",
            executing.id,
            source.amount,
            token,
            source.protocol.value,
            source.chain.value,
            target.protocol.value,
            target.chain.value,
        )

        try:
            withdraw = await self._mover.execute_withdraw(
                source.chain,
                source.protocol,
                source.contract_address,
                token,
                source.amount,
                address,
            )
        except Exception as e:
            logger.error("Withdraw for %s failed: %s", executing.id, e)
            raise ExecutionError(
                f"Withdraw from {source.protocol.value} failed: {e}",
                tx_hash=getattr(e, "tx_hash", None),
                chain=source.chain,
                intent=executing.with_status(IntentStatus.FAILED),
            ) from e
        steps.append("withdraw")
        logger.info("Withdraw confirmed: %s", withdraw.tx_hash)

        await self._sleep(self._config.settle_delay_seconds)
        if executing.is_cross_chain:
            logger.info(
                "Bridging %s from %s to %s",
                token,
                source.chain.value,
                target.chain.value,
            )
            await self._sleep(self._config.bridge_delay_seconds)
            steps.append("bridge")

        try:
            deposit = await self._mover.execute_deposit(executing, address, token)
        except Exception as e:
            logger.error(
                "Deposit for %s failed after withdraw %s: %s",
                executing.id,
                withdraw.tx_hash,
                e,
            )
            raise ExecutionError(
                f"Deposit into {target.protocol.value} failed: {e}",
                tx_hash=withdraw.tx_hash,
                chain=target.chain,
                intent=executing.with_status(IntentStatus.FAILED),
            ) from e
        steps.append("deposit")
        logger.info("Deposit confirmed: %s", deposit.tx_hash)

        return ExecutionResult(
            intent=executing.with_status(IntentStatus.COMPLETED),
            withdraw=withdraw,
            deposit=deposit,
            steps=tuple(steps),
        )

    async def withdraw(
        self, position: YieldPosition, amount: str, address: str
    ) -> TxResult:
        """Standalone withdrawal from one position."""
        check_amount(amount, position)
        try:
            return await self._mover.execute_withdraw(
                position.chain,
                position.protocol,
                position.contract_address,
                position.token,
                amount,
                address,
            )
        except Exception as e:
            raise ExecutionError(
                f"Withdraw from {position.protocol.value} failed: {e}",
                tx_hash=getattr(e, "tx_hash", None),
                chain=position.chain,
            ) from e

    async def deposit(
        self,
        opportunity: YieldOpportunity,
        amount: str,
        address: str,
        available: str,
    ) -> TxResult:
        """Deposit idle funds into ``opportunity``.

        ``available`` is the wallet's idle balance of the opportunity's
        token across chains.
        """
        requested = _decimal(amount, "amount")
        if requested > Decimal(available):
            raise InsufficientBalanceError(
                f"Cannot deposit {amount} {opportunity.token}: only {available} idle",
                required=amount,
                available=available,
            )
        logger.info(
            "Depositing %s %s into %s on %s",
            amount,
            opportunity.token,
            opportunity.protocol.value,
            opportunity.chain.value,
        )
        try:
            result = await self._mover.execute_opportunity_deposit(
                opportunity, amount, address
            )
        except Exception as e:
            logger.error("Deposit into %s failed: %s", opportunity.id, e)
            raise ExecutionError(
                f"Deposit into {opportunity.protocol.value} failed: {e}",
                tx_hash=getattr(e, "tx_hash", None),
                chain=opportunity.chain,
            ) from e
        logger.info("Deposit confirmed: %s", result.tx_hash)
        return result
