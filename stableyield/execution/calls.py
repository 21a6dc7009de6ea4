"""Per-protocol deposit/withdraw call builders.

Each supported protocol shape has one builder class exposing the same
``build_deposit(amount, recipient)`` / ``build_withdraw(amount, recipient)``
contract. Builders are looked up by protocol name, so supporting a new
protocol means registering one more class.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from ..errors import ContractError
from ..models import Chain, ProtocolName
from .tokens import get_token_address, get_token_decimals, to_base_units


@dataclass(frozen=True)
class ContractCall:
    contract_address: str
    function: str
    args: tuple[Any, ...]


class CallBuilder(Protocol):
    def build_deposit(self, amount: str, recipient: str) -> ContractCall: ...

    def build_withdraw(self, amount: str, recipient: str) -> ContractCall: ...


class _BaseCalls:
    deposit_function = "deposit"
    withdraw_function = "withdraw"

    def __init__(self, contract_address: str, token: str, chain: Chain) -> None:
        self.contract_address = contract_address
        self.token = token
        self.chain = chain

    def _units(self, amount: str) -> int:
        return to_base_units(amount, get_token_decimals(self.token))

    def _asset(self) -> str:
        return get_token_address(self.token, self.chain)


class AaveV3Calls(_BaseCalls):
    deposit_function = "supply"

    def build_deposit(self, amount: str, recipient: str) -> ContractCall:
        # supply(asset, amount, onBehalfOf, referralCode)
        return ContractCall(
            self.contract_address,
            self.deposit_function,
            (self._asset(), self._units(amount), recipient, 0),
        )

    def build_withdraw(self, amount: str, recipient: str) -> ContractCall:
        # withdraw(asset, amount, to)
        return ContractCall(
            self.contract_address,
            self.withdraw_function,
            (self._asset(), self._units(amount), recipient),
        )


class CompoundV3Calls(_BaseCalls):
    deposit_function = "supply"

    def build_deposit(self, amount: str, recipient: str) -> ContractCall:
        # supply(asset, amount); the comet credits msg.sender
        return ContractCall(
            self.contract_address,
            self.deposit_function,
            (self._asset(), self._units(amount)),
        )

    def build_withdraw(self, amount: str, recipient: str) -> ContractCall:
        return ContractCall(
            self.contract_address,
            self.withdraw_function,
            (self._asset(), self._units(amount)),
        )


class VaultCalls(_BaseCalls):
    """ERC-4626 style vaults (Yearn, Beefy)."""

    def build_deposit(self, amount: str, recipient: str) -> ContractCall:
        # deposit(assets, receiver)
        return ContractCall(
            self.contract_address,
            self.deposit_function,
            (self._units(amount), recipient),
        )

    def build_withdraw(self, amount: str, recipient: str) -> ContractCall:
        # withdraw(maxShares, recipient)
        return ContractCall(
            self.contract_address,
            self.withdraw_function,
            (self._units(amount), recipient),
        )


class CurveCalls(_BaseCalls):
    deposit_function = "add_liquidity"
    withdraw_function = "remove_liquidity"

    def build_deposit(self, amount: str, recipient: str) -> ContractCall:
        # add_liquidity([amounts], min_mint_amount)
        return ContractCall(
            self.contract_address,
            self.deposit_function,
            ((self._units(amount),), 0),
        )

    def build_withdraw(self, amount: str, recipient: str) -> ContractCall:
        # remove_liquidity(amount, [min_amounts])
        return ContractCall(
            self.contract_address,
            self.withdraw_function,
            (self._units(amount), (0, 0)),
        )


_CALL_BUILDERS: dict[ProtocolName, type[_BaseCalls]] = {
    ProtocolName.AAVE: AaveV3Calls,
    ProtocolName.COMPOUND: CompoundV3Calls,
    ProtocolName.YEARN: VaultCalls,
    ProtocolName.BEEFY: VaultCalls,
    ProtocolName.CURVE: CurveCalls,
}


def calls_for(
    protocol: ProtocolName, contract_address: str, token: str, chain: Chain
) -> CallBuilder:
    """Return the call builder for ``protocol`` bound to one pool and token."""
    builder = _CALL_BUILDERS.get(protocol)
    if builder is None:
        raise ContractError(f"Unsupported protocol: {protocol}", contract_address)
    return builder(contract_address, token, chain)
