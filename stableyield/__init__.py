"""Cross-chain stablecoin yield optimizer."""

__version__ = "0.1.0"
