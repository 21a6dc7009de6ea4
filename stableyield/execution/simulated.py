"""In-memory Mover for dry runs and demos.

All state lives on a caller-owned ``SimulationStore``. Yield accrues
linearly at read time from the position's APY and the store's clock, so
positions read later show more earned yield without any background task.
"""
from __future__ import annotations

import itertools
import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Mapping

from ..errors import ExecutionError, InsufficientBalanceError
from ..models import (
    Chain,
    ChainBalance,
    ProtocolName,
    RebalanceIntent,
    StableBalance,
    TxResult,
    YieldOpportunity,
    YieldPosition,
)
from .calls import ContractCall, calls_for

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365 * 24 * 60 * 60
_CENT = Decimal("0.01")


def _money(value: Decimal) -> str:
    return str(value.quantize(_CENT))


def _new_tx_hash() -> str:
    return "0x" + secrets.token_hex(32)


@dataclass
class _Holding:
    position_id: str
    protocol: ProtocolName
    chain: Chain
    token: str
    principal: Decimal
    apy: float
    contract_address: str
    deposited_at: float


@dataclass(frozen=True)
class SimulatedTransaction:
    tx_hash: str
    kind: str
    chain: Chain
    token: str
    amount: str
    call: ContractCall | None = None


class SimulationStore:
    """Wallet balances, positions and a transaction log for one owner.

    Wallet balances are held per (chain, token). Tokens given at
    construction start on ``home_chain``.
    """

    def __init__(
        self,
        owner: str,
        balances: Mapping[str, float | str] | None = None,
        home_chain: Chain = Chain.ETHEREUM,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.owner = owner
        self.home_chain = home_chain
        self._clock = clock
        self._initial = {token.upper(): Decimal(str(v)) for token, v in (balances or {}).items()}
        self._ids = itertools.count(1)
        self._balances: dict[tuple[Chain, str], Decimal] = {}
        self._holdings: dict[str, _Holding] = {}
        self.transactions: list[SimulatedTransaction] = []
        self.reset()

    def reset(self) -> None:
        """Restore starting balances and drop every position and transaction."""
        self._balances = {(self.home_chain, t): v for t, v in self._initial.items()}
        self._holdings.clear()
        self.transactions.clear()

    # ------------------------------------------------------------------
    # Wallet balances
    # ------------------------------------------------------------------

    def balance(self, token: str, chain: Chain | None = None) -> Decimal:
        token = token.upper()
        if chain is not None:
            return self._balances.get((chain, token), Decimal(0))
        return sum(
            (v for (_, t), v in self._balances.items() if t == token), Decimal(0)
        )

    def credit(self, chain: Chain, token: str, amount: Decimal) -> None:
        key = (chain, token.upper())
        self._balances[key] = self._balances.get(key, Decimal(0)) + amount

    def debit(self, chain: Chain, token: str, amount: Decimal) -> None:
        available = self.balance(token, chain)
        if amount > available:
            raise InsufficientBalanceError(
                f"Not enough {token} on {chain.value}",
                required=str(amount),
                available=str(available),
            )
        self._balances[(chain, token.upper())] = available - amount

    def bridge(self, token: str, amount: Decimal, from_chain: Chain, to_chain: Chain) -> None:
        self.debit(from_chain, token, amount)
        self.credit(to_chain, token, amount)

    def gather(self, token: str, amount: Decimal, to_chain: Chain) -> list[tuple[Chain, Decimal]]:
        """Bridge ``token`` from other chains until ``to_chain`` holds ``amount``.

        Larger balances are drawn first. Returns the (source chain, amount)
        legs that were bridged.
        """
        available = self.balance(token)
        if amount > available:
            raise InsufficientBalanceError(
                f"Not enough {token} across chains",
                required=str(amount),
                available=str(available),
            )
        missing = amount - self.balance(token, to_chain)
        others = sorted(
            (
                (v, chain)
                for (chain, t), v in self._balances.items()
                if t == token.upper() and chain is not to_chain and v > 0
            ),
            key=lambda pair: pair[0],
            reverse=True,
        )
        legs = []
        for held, chain in others:
            if missing <= 0:
                break
            leg = min(held, missing)
            self.bridge(token, leg, chain, to_chain)
            legs.append((chain, leg))
            missing -= leg
        return legs

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def _earned(self, holding: _Holding) -> Decimal:
        elapsed = max(self._clock() - holding.deposited_at, 0.0)
        rate = Decimal(str(holding.apy)) / 100 * Decimal(str(elapsed / SECONDS_PER_YEAR))
        return holding.principal * rate

    def _to_position(self, holding: _Holding) -> YieldPosition:
        earned = self._earned(holding)
        return YieldPosition(
            id=holding.position_id,
            protocol=holding.protocol,
            chain=holding.chain,
            token=holding.token,
            deposited_amount=str(holding.principal),
            current_value=_money(holding.principal + earned),
            apy=holding.apy,
            earned_yield=_money(earned),
            deposit_timestamp=int(holding.deposited_at * 1000),
            contract_address=holding.contract_address,
        )

    def positions(self) -> list[YieldPosition]:
        return [self._to_position(h) for h in self._holdings.values()]

    def find_position(
        self, chain: Chain, protocol: ProtocolName, token: str, contract_address: str = ""
    ) -> YieldPosition | None:
        for holding in self._holdings.values():
            if (
                holding.chain == chain
                and holding.protocol == protocol
                and holding.token == token.upper()
                and (not contract_address or holding.contract_address == contract_address)
            ):
                return self._to_position(holding)
        return None

    def deposit(
        self,
        chain: Chain,
        protocol: ProtocolName,
        token: str,
        amount: str,
        apy: float,
        contract_address: str = "",
    ) -> YieldPosition:
        value = Decimal(amount)
        self.debit(chain, token, value)
        position_id = f"sim-{protocol.value.lower()}-{chain.value}-{token.lower()}-{next(self._ids)}"
        holding = _Holding(
            position_id=position_id,
            protocol=protocol,
            chain=chain,
            token=token.upper(),
            principal=value,
            apy=apy,
            contract_address=contract_address,
            deposited_at=self._clock(),
        )
        self._holdings[position_id] = holding
        return self._to_position(holding)

    def seed(self, position: YieldPosition) -> None:
        """Place an existing position in the store without touching balances.

        Yield recorded on the position is folded into its accrual start so
        reads continue from the same earned amount.
        """
        principal = Decimal(position.deposited_amount)
        earned = Decimal(position.earned_yield or "0")
        started = self._clock()
        if principal > 0 and position.apy > 0 and earned > 0:
            years = earned / (principal * Decimal(str(position.apy)) / 100)
            started -= float(years) * SECONDS_PER_YEAR
        self._holdings[position.id] = _Holding(
            position_id=position.id,
            protocol=position.protocol,
            chain=position.chain,
            token=position.token.upper(),
            principal=principal,
            apy=position.apy,
            contract_address=position.contract_address,
            deposited_at=started,
        )

    def withdraw(self, position_id: str, amount: str) -> Decimal:
        """Withdraw principal; the credit includes all yield earned so far.

        A full withdrawal removes the position. A partial one keeps the
        remaining principal and restarts accrual from now.
        """
        holding = self._holdings.get(position_id)
        if holding is None:
            raise ExecutionError(f"Position {position_id} not found")

        value = Decimal(amount)
        if value > holding.principal:
            raise InsufficientBalanceError(
                f"Withdrawal exceeds deposited amount of {position_id}",
                required=amount,
                available=str(holding.principal),
            )

        credited = value + self._earned(holding)
        if value == holding.principal:
            del self._holdings[position_id]
        else:
            holding.principal -= value
            holding.deposited_at = self._clock()
        self.credit(holding.chain, holding.token, credited)
        return credited

    def record(self, kind: str, chain: Chain, token: str, amount: str, call: ContractCall | None = None) -> str:
        tx_hash = _new_tx_hash()
        self.transactions.append(
            SimulatedTransaction(tx_hash, kind, chain, token.upper(), amount, call)
        )
        return tx_hash

    # ------------------------------------------------------------------
    # PositionSource
    # ------------------------------------------------------------------

    def _owns(self, address: str) -> bool:
        return address.lower() == self.owner.lower()

    async def fetch_positions(self, address: str) -> list[YieldPosition]:
        return self.positions() if self._owns(address) else []

    async def fetch_balances(self, address: str) -> list[StableBalance]:
        if not self._owns(address):
            return []

        breakdowns: dict[str, list[ChainBalance]] = {}
        for (chain, token), amount in sorted(
            self._balances.items(), key=lambda kv: (kv[0][1], kv[0][0].value)
        ):
            if amount > 0:
                breakdowns.setdefault(token, []).append(
                    ChainBalance(chain, str(amount), float(amount))
                )
        for position in self.positions():
            breakdowns.setdefault(position.token, []).append(
                ChainBalance(
                    position.chain,
                    position.current_value,
                    float(position.current_value),
                    in_yield_protocol=True,
                    protocol=position.protocol,
                )
            )

        balances = []
        for token, parts in breakdowns.items():
            total = sum((Decimal(p.amount) for p in parts), Decimal(0))
            balances.append(
                StableBalance(
                    token=token,
                    total_amount=_money(total),
                    total_value_usd=float(total),
                    breakdown=tuple(parts),
                )
            )
        return balances


class SimulatedMover:
    """Mover backed by a SimulationStore.

    Each step builds the same contract call a live Mover would send and
    records it alongside a random transaction hash.
    """

    def __init__(self, store: SimulationStore) -> None:
        self._store = store

    async def execute_withdraw(
        self,
        chain: Chain,
        protocol: ProtocolName,
        contract_address: str,
        token: str,
        amount: str,
        address: str,
    ) -> TxResult:
        call = calls_for(protocol, contract_address, token, chain).build_withdraw(
            amount, address
        )
        position = self._store.find_position(chain, protocol, token, contract_address)
        if position is None:
            raise ExecutionError(
                f"No {token} position in {protocol.value} on {chain.value}", chain=chain
            )
        credited = self._store.withdraw(position.id, amount)
        tx_hash = self._store.record("withdraw", chain, token, amount, call)
        logger.info(
            "[sim] Withdrew %s %s from %s on %s (credited %s): %s",
            amount, token, protocol.value, chain.value, _money(credited), tx_hash,
        )
        return TxResult(tx_hash, chain)

    async def execute_deposit(
        self, intent: RebalanceIntent, address: str, token: str
    ) -> TxResult:
        target = intent.target
        amount = intent.source.amount
        call = calls_for(target.protocol, target.contract_address, token, target.chain).build_deposit(
            amount, address
        )
        if intent.is_cross_chain:
            self._store.bridge(token, Decimal(amount), intent.source.chain, target.chain)
            self._store.record("bridge", target.chain, token, amount)
        self._store.deposit(
            target.chain,
            target.protocol,
            token,
            amount,
            target.expected_apy,
            target.contract_address,
        )
        tx_hash = self._store.record("deposit", target.chain, token, amount, call)
        logger.info(
            "[sim] Deposited %s %s into %s on %s: %s",
            amount, token, target.protocol.value, target.chain.value, tx_hash,
        )
        return TxResult(tx_hash, target.chain)

    async def execute_opportunity_deposit(
        self, opportunity: YieldOpportunity, amount: str, address: str
    ) -> TxResult:
        token = opportunity.token
        call = calls_for(
            opportunity.protocol, opportunity.contract_address, token, opportunity.chain
        ).build_deposit(amount, address)
        for chain, leg in self._store.gather(token, Decimal(amount), opportunity.chain):
            self._store.record("bridge", opportunity.chain, token, str(leg))
            logger.info(
                "[sim] Bridged %s %s from %s to %s",
                leg, token, chain.value, opportunity.chain.value,
            )
        self._store.deposit(
            opportunity.chain,
            opportunity.protocol,
            token,
            amount,
            opportunity.apy,
            opportunity.contract_address,
        )
        tx_hash = self._store.record("deposit", opportunity.chain, token, amount, call)
        logger.info(
            "[sim] Deposited %s %s into %s on %s: %s",
            amount, token, opportunity.protocol.value, opportunity.chain.value, tx_hash,
        )
        return TxResult(tx_hash, opportunity.chain)
