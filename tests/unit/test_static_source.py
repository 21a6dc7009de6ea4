"""Unit tests for the YAML positions loader and static position source."""
from __future__ import annotations

from pathlib import Path

import pytest

from stableyield.errors import DataSourceError
from stableyield.models import Chain, ProtocolName
from stableyield.sources import StaticPositionSource, load_holdings, load_positions


class TestLoadHoldings:
    def test_positions(self, sample_positions_path: Path) -> None:
        positions = load_positions(sample_positions_path)
        assert len(positions) == 2

        first = positions[0]
        assert first.id == "aave-eth-usdc"
        assert first.protocol is ProtocolName.AAVE
        assert first.chain is Chain.ETHEREUM
        assert first.token == "USDC"
        assert first.deposited_amount == "5000"
        assert first.current_value == "5012.50"
        assert first.earned_yield == "12.50"

    def test_defaults_for_missing_fields(self, sample_positions_path: Path) -> None:
        second = load_positions(sample_positions_path)[1]
        assert second.id == "compound-ethereum-usdt-1"
        assert second.current_value == second.deposited_amount == "1000"
        assert second.earned_yield == "0"
        assert second.contract_address == ""

    def test_balances(self, sample_positions_path: Path) -> None:
        balances = load_holdings(sample_positions_path).balances
        assert len(balances) == 1
        usdc = balances[0]
        assert usdc.total_amount == "5762.50"
        assert usdc.breakdown[1].protocol is ProtocolName.AAVE
        assert usdc.idle_value_usd == 750.0

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_holdings(tmp_path / "nope.yaml")

    def test_bad_amount(self, tmp_path: Path) -> None:
        path = tmp_path / "p.yaml"
        path.write_text(
            "positions:\n  - {protocol: aave, chain: base, token: USDC, "
            "deposited_amount: abc, apy: 1}\n"
        )
        with pytest.raises(ValueError, match="deposited_amount"):
            load_holdings(path)

    def test_missing_field(self, tmp_path: Path) -> None:
        path = tmp_path / "p.yaml"
        path.write_text("positions:\n  - {protocol: aave, chain: base}\n")
        with pytest.raises(ValueError, match="Malformed entry"):
            load_holdings(path)


class TestStaticPositionSource:
    @pytest.mark.asyncio
    async def test_reads_file_per_wallet(self, sample_positions_path: Path) -> None:
        source = StaticPositionSource({"0xABC": sample_positions_path})
        assert len(await source.fetch_positions("0xabc")) == 2
        assert len(await source.fetch_balances("0xABC")) == 1

    @pytest.mark.asyncio
    async def test_unknown_wallet_is_empty(self, sample_positions_path: Path) -> None:
        source = StaticPositionSource({"0xABC": sample_positions_path})
        assert await source.fetch_positions("0xOTHER") == []

    @pytest.mark.asyncio
    async def test_unreadable_file_raises_data_source_error(self, tmp_path: Path) -> None:
        source = StaticPositionSource({"0xABC": tmp_path / "missing.yaml"})
        with pytest.raises(DataSourceError):
            await source.fetch_positions("0xABC")
