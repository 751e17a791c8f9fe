"""Supported chains for managed USDC bridging.

Chain identifiers match the bridge engine's names (``Arc_Testnet``,
``Polygon_Amoy_Testnet`` ...). The bridged asset is USDC everywhere, with a
fixed decimal count per chain: amounts are converted to base units from this
table, never from an on-chain ``decimals()`` call.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from typing import Optional, Union


class Blockchain(str, Enum):
    """Chain identifiers accepted by the transfer API."""

    ARC_TESTNET = "Arc_Testnet"
    POLYGON_AMOY_TESTNET = "Polygon_Amoy_Testnet"
    ETHEREUM_SEPOLIA = "Ethereum_Sepolia"
    BASE_SEPOLIA = "Base_Sepolia"
    AVALANCHE_FUJI = "Avalanche_Fuji"


# Largest human amount accepted is just under 10**MAX_AMOUNT_DIGITS
MAX_AMOUNT_DIGITS = 15


class UnsupportedChainError(ValueError):
    """Raised for a chain identifier that is not in the registry."""

    pass


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a bridgeable chain."""

    name: str
    display_name: str
    chain_id: int
    rpc_url: str
    explorer_url: str
    usdc_address: str
    bridge_domain: int  # CCTP domain id
    usdc_decimals: int = 6

    def tx_url(self, tx_hash: str) -> str:
        """Explorer link for a transaction."""
        return f"{self.explorer_url}/tx/{tx_hash}"


# ======================
# Chain Configurations
# ======================

CHAINS: dict[str, ChainConfig] = {
    Blockchain.ARC_TESTNET.value: ChainConfig(
        name=Blockchain.ARC_TESTNET.value,
        display_name="Arc Testnet",
        chain_id=5042002,
        rpc_url="https://rpc.testnet.arc.network",
        explorer_url="https://testnet.arcscan.app",
        usdc_address="0x3600000000000000000000000000000000000000",
        bridge_domain=26,
    ),
    Blockchain.POLYGON_AMOY_TESTNET.value: ChainConfig(
        name=Blockchain.POLYGON_AMOY_TESTNET.value,
        display_name="Polygon PoS Amoy",
        chain_id=80002,
        rpc_url="https://rpc-amoy.polygon.technology",
        explorer_url="https://amoy.polygonscan.com",
        usdc_address="0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582",
        bridge_domain=7,
    ),
    Blockchain.ETHEREUM_SEPOLIA.value: ChainConfig(
        name=Blockchain.ETHEREUM_SEPOLIA.value,
        display_name="Ethereum Sepolia",
        chain_id=11155111,
        rpc_url="https://rpc.sepolia.org",
        explorer_url="https://sepolia.etherscan.io",
        usdc_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        bridge_domain=0,
    ),
    Blockchain.BASE_SEPOLIA.value: ChainConfig(
        name=Blockchain.BASE_SEPOLIA.value,
        display_name="Base Sepolia",
        chain_id=84532,
        rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        bridge_domain=6,
    ),
    Blockchain.AVALANCHE_FUJI.value: ChainConfig(
        name=Blockchain.AVALANCHE_FUJI.value,
        display_name="Avalanche Fuji",
        chain_id=43113,
        rpc_url="https://api.avax-test.network/ext/bc/C/rpc",
        explorer_url="https://testnet.snowtrace.io",
        usdc_address="0x5425890298aed601595a70AB815c96711a31Bc65",
        bridge_domain=1,
    ),
}


def get_chain(name: str) -> Optional[ChainConfig]:
    """Get chain configuration by identifier."""
    return CHAINS.get(name)


def require_chain(name: str) -> ChainConfig:
    """Get chain configuration or raise UnsupportedChainError."""
    chain = CHAINS.get(name)
    if chain is None:
        raise UnsupportedChainError(f"Unsupported blockchain: {name}")
    return chain


def parse_units(amount: Union[str, Decimal], decimals: int) -> int:
    """Convert a human-unit amount to integer base units.

    The conversion is exact: an amount with more fractional digits than the
    asset supports is rejected rather than rounded.

    Args:
        amount: Decimal amount, e.g. "10.5"
        decimals: Asset decimal count

    Returns:
        Amount in base units (amount * 10**decimals)

    Raises:
        ValueError: If the amount is not a finite decimal, is too precise
            or has more than MAX_AMOUNT_DIGITS integer digits
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount}")

    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount}")
    if value.adjusted() >= MAX_AMOUNT_DIGITS:
        raise ValueError(f"Amount {amount} is too large")

    # Enough precision that scaling never rounds
    with localcontext() as ctx:
        ctx.prec = len(value.as_tuple().digits) + max(decimals, 0) + 1
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def format_units(value: int, decimals: int) -> Decimal:
    """Convert integer base units back to a human-unit Decimal."""
    return Decimal(value).scaleb(-decimals)
