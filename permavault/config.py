"""Runtime configuration — env-driven, via pydantic-settings.

Reads from a ``.env`` file and ``PERMAVAULT_*`` environment variables.
Pricing constants are injectable too: point ``PERMAVAULT_PRICING_PATH`` at a
JSON document matching ``PricingConfig``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class VaultConfig(BaseSettings):
    """Vault pipeline configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export PERMAVAULT_ENVIRONMENT=staging
        export PERMAVAULT_STORAGE_BUCKET=my-vaults
        export PERMAVAULT_GRANT_TTL_SECONDS=1800

    Or via .env file::

        PERMAVAULT_ENVIRONMENT=production
        PERMAVAULT_SIGNING_KEY=<hex ed25519 seed>
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PERMAVAULT_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Object storage
    storage_bucket: str = ""
    storage_region: str = "us-east-1"
    storage_endpoint_url: str | None = None
    key_namespace: str = "vaults"

    # Upload grants and transfers
    grant_ttl_seconds: int = Field(default=900, ge=60, le=3600)
    max_concurrent_grants: int = Field(default=8, ge=1, le=32)
    max_concurrent_uploads: int = Field(default=1, ge=1, le=8)
    upload_timeout_seconds: float = 300.0

    # Hashing
    hash_chunk_size: int = Field(default=8 * MIB, gt=0)

    # Manifests
    manifest_dir: Path = Path(".permavault/manifests")
    signing_key: str = ""  # hex Ed25519 seed; ephemeral key when empty

    # Endowment
    usd_per_unit: float = Field(default=2500.0, gt=0)
    endowment_unit: str = "ETH"

    # Token minting
    token_network: str = "sepolia"
    token_contract: str = ""
    mint_destination: str = ""

    # Pricing overrides (JSON document matching PricingConfig)
    pricing_path: Path | None = None

    @field_validator("key_namespace")
    @classmethod
    def _strip_namespace(cls, value: str) -> str:
        cleaned = value.strip().strip("/")
        if not cleaned:
            raise ValueError("key_namespace must not be empty")
        return cleaned

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton; import as `from permavault.config import config`
config = VaultConfig()
