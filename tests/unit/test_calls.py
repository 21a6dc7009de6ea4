"""Unit tests for per-protocol call builders and the token table."""
from __future__ import annotations

import pytest

from stableyield.errors import ContractError
from stableyield.execution.calls import (
    AaveV3Calls,
    CompoundV3Calls,
    CurveCalls,
    VaultCalls,
    calls_for,
)
from stableyield.execution.tokens import (
    get_token_address,
    get_token_decimals,
    to_base_units,
)
from stableyield.models import Chain, ProtocolName

POOL = "0xPOOL"
USER = "0xUSER"
USDC_ETH = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


class TestTokens:
    def test_addresses(self) -> None:
        assert get_token_address("usdc", Chain.ETHEREUM) == USDC_ETH
        assert get_token_address("DAI", Chain.OPTIMISM).startswith("0x")

    def test_unknown_token_raises(self) -> None:
        with pytest.raises(ContractError):
            get_token_address("USDE", Chain.BASE)

    def test_decimals(self) -> None:
        assert get_token_decimals("USDC") == 6
        assert get_token_decimals("usdt") == 6
        assert get_token_decimals("DAI") == 18
        with pytest.raises(ContractError):
            get_token_decimals("USDB")

    def test_base_units(self) -> None:
        assert to_base_units("12.5", 6) == 12_500_000
        assert to_base_units("1", 18) == 10**18
        # dust below one unit is truncated
        assert to_base_units("0.0000019", 6) == 1


class TestRegistry:
    @pytest.mark.parametrize(
        ("protocol", "cls"),
        [
            (ProtocolName.AAVE, AaveV3Calls),
            (ProtocolName.COMPOUND, CompoundV3Calls),
            (ProtocolName.YEARN, VaultCalls),
            (ProtocolName.BEEFY, VaultCalls),
            (ProtocolName.CURVE, CurveCalls),
        ],
    )
    def test_builder_per_protocol(self, protocol: ProtocolName, cls: type) -> None:
        assert isinstance(calls_for(protocol, POOL, "USDC", Chain.ETHEREUM), cls)


class TestCallShapes:
    def test_aave(self) -> None:
        builder = calls_for(ProtocolName.AAVE, POOL, "USDC", Chain.ETHEREUM)
        deposit = builder.build_deposit("100", USER)
        assert deposit.contract_address == POOL
        assert deposit.function == "supply"
        assert deposit.args == (USDC_ETH, 100_000_000, USER, 0)
        withdraw = builder.build_withdraw("100", USER)
        assert withdraw.function == "withdraw"
        assert withdraw.args == (USDC_ETH, 100_000_000, USER)

    def test_compound(self) -> None:
        builder = calls_for(ProtocolName.COMPOUND, POOL, "USDC", Chain.ETHEREUM)
        assert builder.build_deposit("1", USER).args == (USDC_ETH, 1_000_000)
        assert builder.build_withdraw("1", USER).function == "withdraw"

    def test_vault(self) -> None:
        builder = calls_for(ProtocolName.YEARN, POOL, "DAI", Chain.ETHEREUM)
        deposit = builder.build_deposit("2", USER)
        assert deposit.function == "deposit"
        assert deposit.args == (2 * 10**18, USER)
        assert builder.build_withdraw("2", USER).args == (2 * 10**18, USER)

    def test_curve(self) -> None:
        builder = calls_for(ProtocolName.CURVE, POOL, "USDT", Chain.POLYGON)
        deposit = builder.build_deposit("3", USER)
        assert deposit.function == "add_liquidity"
        assert deposit.args == ((3_000_000,), 0)
        withdraw = builder.build_withdraw("3", USER)
        assert withdraw.function == "remove_liquidity"
        assert withdraw.args == (3_000_000, (0, 0))

    def test_unsupported_token_raises_on_build(self) -> None:
        builder = calls_for(ProtocolName.AAVE, POOL, "USDE", Chain.ETHEREUM)
        with pytest.raises(ContractError):
            builder.build_deposit("1", USER)
