"""Stablecoin deployments and decimals per chain."""
from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

from ..errors import ContractError
from ..models import Chain

TOKEN_ADDRESSES: dict[str, dict[Chain, str]] = {
    "USDC": {
        Chain.ETHEREUM: "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        Chain.POLYGON: "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        Chain.ARBITRUM: "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        Chain.OPTIMISM: "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
        Chain.BASE: "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    },
    "USDT": {
        Chain.ETHEREUM: "0xdAC17F958D2ee523a2206206994597C13D831ec7",
        Chain.POLYGON: "0xc2132D05D31c914a87C6611C10748AEb04B58e8F",
        Chain.ARBITRUM: "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9",
        Chain.OPTIMISM: "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58",
        Chain.BASE: "0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2",
    },
    "DAI": {
        Chain.ETHEREUM: "0x6B175474E89094C44Da98b954EedeAC495271d0F",
        Chain.POLYGON: "0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063",
        Chain.ARBITRUM: "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1",
        Chain.OPTIMISM: "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1",
        Chain.BASE: "0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb",
    },
}

TOKEN_DECIMALS: dict[str, int] = {"USDC": 6, "USDT": 6, "DAI": 18}


def get_token_address(token: str, chain: Chain) -> str:
    address = TOKEN_ADDRESSES.get(token.upper(), {}).get(chain)
    if not address:
        raise ContractError(f"Token {token} not supported on chain {chain.value}")
    return address


def get_token_decimals(token: str) -> int:
    try:
        return TOKEN_DECIMALS[token.upper()]
    except KeyError:
        raise ContractError(f"Unknown decimals for token {token}") from None


def to_base_units(amount: str, decimals: int) -> int:
    """Convert a decimal string to integer base units, truncating dust.

    Examples:
        ("12.5", 6) → 12500000
        ("1", 18) → 10**18
    """
    scaled = Decimal(amount) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))
