"""Typed errors raised at the I/O and execution boundaries."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import Chain, RebalanceIntent


class YieldOptimizerError(Exception):
    """Base class for all errors raised by this package."""


class DataSourceError(YieldOptimizerError):
    """A yield feed or position source was unreachable or returned junk."""


class InsufficientBalanceError(YieldOptimizerError):
    def __init__(self, message: str, required: str, available: str) -> None:
        super().__init__(message)
        self.required = required
        self.available = available


class ExecutionError(YieldOptimizerError):
    """A withdraw, bridge or deposit step failed."""

    def __init__(
        self,
        message: str,
        tx_hash: str | None = None,
        chain: Chain | None = None,
        intent: RebalanceIntent | None = None,
    ) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
        self.chain = chain
        self.intent = intent


class ContractError(YieldOptimizerError):
    def __init__(self, message: str, contract_address: str = "") -> None:
        super().__init__(message)
        self.contract_address = contract_address


class NetworkError(YieldOptimizerError):
    def __init__(self, message: str, chain: Chain | None = None) -> None:
        super().__init__(message)
        self.chain = chain


class GuardrailError(YieldOptimizerError):
    def __init__(self, message: str, rule: str, value: Any, threshold: Any) -> None:
        super().__init__(message)
        self.rule = rule
        self.value = value
        self.threshold = threshold


class InvalidTransitionError(YieldOptimizerError):
    """An intent status change went backwards or skipped a step."""


def describe_error(error: BaseException) -> str:
    """Render any exception as a single user-facing line."""
    if isinstance(error, ContractError):
        return f"Contract error at {error.contract_address}: {error}"
    if isinstance(error, ExecutionError):
        suffix = f" ({error.tx_hash})" if error.tx_hash else ""
        return f"Transaction failed{suffix}: {error}"
    if isinstance(error, InsufficientBalanceError):
        return f"Insufficient balance: need {error.required}, have {error.available}"
    if isinstance(error, GuardrailError):
        return f"Guardrail {error.rule} failed: {error}"
    if isinstance(error, NetworkError):
        chain = error.chain.value if error.chain is not None else "unknown"
        return f"Network error on chain {chain}: {error}"
    if isinstance(error, DataSourceError):
        return f"Data source unavailable: {error}"

    message = str(error)
    if "User rejected" in message:
        return "Transaction was rejected by user"
    if "insufficient funds" in message:
        return "Insufficient funds for transaction"
    return message or "An unknown error occurred"
