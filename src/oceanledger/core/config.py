"""Core configuration - centralized config for the oceanledger package.

All environment-based configuration should flow through this module.

Usage:
    from oceanledger.core.config import get_config
    config = get_config()

    field = config.tracked_field
    log_level = config.log_level
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TRACKABLE_FIELDS = ("ph", "carbonate", "temperature")


class CoreSettings(BaseSettings):
    """Core configuration settings for OceanLedger.

    Settings can be configured via environment variables with the
    OCEANLEDGER_ prefix, or through a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="OCEANLEDGER_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="OCEANLEDGER_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="OCEANLEDGER_LOG_FILE",
    )

    # ==========================================================================
    # LEDGER SETTINGS
    # ==========================================================================

    tracked_field: str = Field(
        default="ph",
        description="Reading folded into the region accumulator: 'ph', 'carbonate' or 'temperature'",
        validation_alias="OCEANLEDGER_TRACKED_FIELD",
    )
    max_measurement_id: int = Field(
        default=2**63 - 1,
        ge=1,
        description="Largest measurement id the counter may hand out",
        validation_alias="OCEANLEDGER_MAX_MEASUREMENT_ID",
    )
    known_regions: str | None = Field(
        default=None,
        description="Comma-separated allow-list of region names (unset allows any)",
        validation_alias="OCEANLEDGER_KNOWN_REGIONS",
    )

    # ==========================================================================
    # DECRYPTION SETTINGS
    # ==========================================================================

    request_timeout_seconds: int = Field(
        default=0,
        description="Age after which a Pending decryption request may be expired (0 disables)",
        validation_alias="OCEANLEDGER_REQUEST_TIMEOUT_SECONDS",
    )
    oracle_public_key: str | None = Field(
        default=None,
        description="Ed25519 public key hex of the decryption oracle",
        validation_alias="OCEANLEDGER_ORACLE_PUBLIC_KEY",
    )

    @field_validator("tracked_field")
    @classmethod
    def _check_tracked_field(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in TRACKABLE_FIELDS:
            raise ValueError(f"tracked_field must be one of {', '.join(TRACKABLE_FIELDS)}")
        return value

    @field_validator("request_timeout_seconds")
    @classmethod
    def _check_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    @property
    def region_allow_list(self) -> frozenset[str] | None:
        """Parsed known_regions, or None when every region is accepted."""
        if not self.known_regions:
            return None
        return frozenset(r.strip() for r in self.known_regions.split(",") if r.strip())


# Global config instance
_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Creates the config on first access, reading from environment variables.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
