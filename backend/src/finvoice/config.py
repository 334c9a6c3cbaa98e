"""
Application configuration loaded from environment variables.

All configuration is validated at startup to fail fast on misconfiguration.
Contract identifiers are optional at startup and checked per request, so a
missing package id fails the request instead of the process.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PostgresDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    All settings are loaded from environment variables with the same name.
    Use .env file for local development.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Ledger network
    sui_network: Literal["testnet", "mainnet", "devnet"] = Field(
        default="testnet",
        description="Sui network to read from",
    )
    sui_rpc_url: str | None = Field(
        default=None,
        description="Override the full node JSON-RPC URL (for testing or private nodes)",
    )
    ledger_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for a single JSON-RPC call",
    )

    # Contract identifiers
    package_id: str | None = Field(
        default=None,
        description="Published package id of the invoice financing contracts",
    )
    treasury_id: str | None = Field(
        default=None,
        description="Shared Treasury object id",
    )
    creation_event_type: str | None = Field(
        default=None,
        description="Full event type for invoice creation (defaults to <package>::invoice_financing::InvoiceCreated)",
    )

    # Discovery and history paging
    discovery_page_size: int = Field(default=100, ge=1, le=1000)
    discovery_max_pages: int = Field(
        default=1,
        ge=1,
        description="Creation-event pages to accumulate per discovery pass",
    )
    discovery_retry_attempts: int = Field(default=3, ge=1, le=10)
    history_page_size: int = Field(default=50, ge=1, le=1000)
    history_max_pages: int = Field(default=1, ge=1)

    # Platform fee parameters
    origination_fee_bps: int = Field(default=100, ge=0, le=10_000)
    take_rate_bps: int = Field(default=1_000, ge=0, le=10_000)
    settlement_fee_flat: int = Field(
        default=10_000_000,
        ge=0,
        description="Flat settlement fee in smallest units (0.01 SUI)",
    )
    max_discount_bps: int = Field(
        default=5_000,
        ge=1,
        le=10_000,
        description="Discount rates above this are rejected as malformed",
    )

    # Persisted discovery cache (in-memory when unset)
    database_url: PostgresDsn | None = Field(
        default=None,
        description="PostgreSQL connection string with asyncpg driver",
    )

    # Server
    debug: bool = Field(
        default=False,
        description="Enable debug mode with detailed error messages",
    )

    @property
    def rpc_url(self) -> str:
        """Return the JSON-RPC URL for the configured Sui network."""
        if self.sui_rpc_url:
            return self.sui_rpc_url
        urls = {
            "testnet": "https://fullnode.testnet.sui.io:443",
            "mainnet": "https://fullnode.mainnet.sui.io:443",
            "devnet": "https://fullnode.devnet.sui.io:443",
        }
        return urls[self.sui_network]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once at startup and cached for subsequent calls.
    This ensures consistent configuration across the application lifecycle.
    """
    return Settings()
