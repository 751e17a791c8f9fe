"""Application configuration using pydantic-settings.

All values are read once at process start. ``validate_runtime`` is called
before the service starts so that a broken deployment fails loudly instead
of failing the first transfer that touches the bad value.
"""

import re
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from relaybridge.chains import CHAINS, require_chain

_HEX_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class ConfigurationError(Exception):
    """Raised when settings are missing or invalid at startup."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/relaybridge.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    dry_run: bool = Field(
        default=True, description="Simulate bridge and payout (no funds are moved)"
    )

    # ======================
    # Relay identity
    # ======================
    relay_private_key: Optional[str] = Field(
        default=None, description="Private key of the relay/service wallet (hex)"
    )

    # ======================
    # Chains
    # ======================
    enabled_chains: str = Field(
        default="Arc_Testnet,Polygon_Amoy_Testnet",
        description="Comma-separated list of chain identifiers accepted for transfers",
    )

    arc_rpc_url: str = Field(default="", description="Arc Testnet RPC URL")
    polygon_amoy_rpc_url: str = Field(default="", description="Polygon Amoy RPC URL")
    ethereum_sepolia_rpc_url: str = Field(default="", description="Ethereum Sepolia RPC URL")
    base_sepolia_rpc_url: str = Field(default="", description="Base Sepolia RPC URL")
    avalanche_fuji_rpc_url: str = Field(default="", description="Avalanche Fuji RPC URL")

    # USDC contract overrides (empty = registry default)
    arc_usdc_address: str = Field(default="", description="USDC contract on Arc Testnet")
    polygon_amoy_usdc_address: str = Field(default="", description="USDC contract on Polygon Amoy")
    ethereum_sepolia_usdc_address: str = Field(default="", description="USDC contract on Sepolia")
    base_sepolia_usdc_address: str = Field(default="", description="USDC contract on Base Sepolia")
    avalanche_fuji_usdc_address: str = Field(default="", description="USDC contract on Fuji")

    # ======================
    # Deposit watching
    # ======================
    deposit_poll_interval: float = Field(
        default=5.0, description="Seconds between deposit polling attempts"
    )
    deposit_timeout_seconds: float = Field(
        default=600.0, description="Total time budget for a deposit to arrive"
    )

    # ======================
    # Bridge engine / payout
    # ======================
    bridge_engine_url: str = Field(default="", description="External bridge engine base URL")
    bridge_engine_api_key: str = Field(default="", description="External bridge engine API key")
    bridge_engine_timeout: float = Field(
        default=900.0, description="Seconds to wait for a full bridge run (includes attestation)"
    )
    payout_confirmation_timeout: float = Field(
        default=120.0, description="Seconds to wait for the payout receipt"
    )
    shutdown_drain_timeout: float = Field(
        default=60.0,
        description="Seconds a shutdown waits for jobs already bridging or paying out",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def chain_names(self) -> list[str]:
        """Parse enabled chains into a list of identifiers."""
        return [c.strip() for c in self.enabled_chains.split(",") if c.strip()]

    def get_rpc_url(self, chain: str) -> str:
        """Get RPC URL for a specific chain."""
        rpc_map = {
            "Arc_Testnet": self.arc_rpc_url,
            "Polygon_Amoy_Testnet": self.polygon_amoy_rpc_url,
            "Ethereum_Sepolia": self.ethereum_sepolia_rpc_url,
            "Base_Sepolia": self.base_sepolia_rpc_url,
            "Avalanche_Fuji": self.avalanche_fuji_rpc_url,
        }
        return rpc_map.get(chain, "")

    def get_usdc_address(self, chain: str) -> str:
        """Get the USDC contract for a chain, honouring overrides."""
        override_map = {
            "Arc_Testnet": self.arc_usdc_address,
            "Polygon_Amoy_Testnet": self.polygon_amoy_usdc_address,
            "Ethereum_Sepolia": self.ethereum_sepolia_usdc_address,
            "Base_Sepolia": self.base_sepolia_usdc_address,
            "Avalanche_Fuji": self.avalanche_fuji_usdc_address,
        }
        override = override_map.get(chain, "")
        if override:
            return override
        return require_chain(chain).usdc_address

    def validate_runtime(self) -> None:
        """Check everything the service needs before it starts.

        Raises:
            ConfigurationError: listing every problem found
        """
        problems = []

        if not self.relay_private_key:
            problems.append("RELAY_PRIVATE_KEY is not set")
        elif not _HEX_KEY_RE.match(self.relay_private_key.strip()):
            problems.append("RELAY_PRIVATE_KEY must be a 32-byte hex string")

        if not self.chain_names:
            problems.append("ENABLED_CHAINS is empty")

        for chain in self.chain_names:
            if chain not in CHAINS:
                problems.append(f"Unknown chain in ENABLED_CHAINS: {chain}")
                continue
            if not self.get_rpc_url(chain):
                problems.append(f"No RPC URL configured for {chain}")
            if not _ADDRESS_RE.match(self.get_usdc_address(chain)):
                problems.append(f"Invalid USDC contract address for {chain}")

        if self.deposit_poll_interval <= 0:
            problems.append("DEPOSIT_POLL_INTERVAL must be positive")
        if self.deposit_timeout_seconds <= 0:
            problems.append("DEPOSIT_TIMEOUT_SECONDS must be positive")
        if self.shutdown_drain_timeout < 0:
            problems.append("SHUTDOWN_DRAIN_TIMEOUT must not be negative")

        if not self.dry_run and not self.bridge_engine_url:
            problems.append("BRIDGE_ENGINE_URL is required when DRY_RUN is disabled")

        if problems:
            raise ConfigurationError(problems)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "relay_key": "***" if self.relay_private_key else "(not set)",
            "chains": {
                chain: {
                    "rpc": self._redact_url(self.get_rpc_url(chain)) or "(not set)",
                    "usdc": self.get_usdc_address(chain) if chain in CHAINS else "(unknown)",
                }
                for chain in self.chain_names
            },
            "deposit": {
                "poll_interval": self.deposit_poll_interval,
                "timeout_seconds": self.deposit_timeout_seconds,
            },
            "bridge_engine": self.bridge_engine_url or "(simulated)",
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials embedded in a URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
