"""Managed cross-chain USDC transfers through a custodial relay wallet."""

__version__ = "0.1.0"
