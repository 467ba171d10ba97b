"""Configuration management for DRIP using Pydantic Settings."""

from datetime import timedelta

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from drip.faucet.orchestrator import DispensePolicy


class DripConfig(BaseSettings):
    """DRIP service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # nyksd
    nyksd_binary: str = Field(default="nyksd", alias="DRIP_NYKSD_BINARY")
    chain_id: str = Field(default="nyks", alias="DRIP_CHAIN_ID")
    keyring_backend: str = Field(default="test", alias="DRIP_KEYRING_BACKEND")
    validator_name: str = Field(alias="DRIP_VALIDATOR_NAME")
    faucet_account_name: str = Field(alias="DRIP_FAUCET_ACCOUNT_NAME")

    # Amounts
    nyks_amount: str = Field(default="10000nyks", alias="DRIP_NYKS_AMOUNT")
    sats_amount: str = Field(default="50000", alias="DRIP_SATS_AMOUNT")
    relayer_sats_amount: str = Field(default="500000000", alias="DRIP_RELAYER_SATS_AMOUNT")
    relayer_address: str | None = Field(default=None, alias="DRIP_RELAYER_ADDRESS")
    btc_deposit_address: str = Field(
        default="14uEN8abvKA1zgYCpv8MWCUwAMLGBqdZGM", alias="DRIP_BTC_DEPOSIT_ADDRESS"
    )
    btc_block_height: str = Field(default="50000", alias="DRIP_BTC_BLOCK_HEIGHT")

    # Eligibility
    window_hours: float = Field(default=24.0, alias="DRIP_WINDOW_HOURS", gt=0)
    disburse_timeout_seconds: float = Field(
        default=60.0, alias="DRIP_DISBURSE_TIMEOUT_SECONDS", gt=0
    )

    # Redis (unset: in-memory ledger)
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # HTTP
    http_host: str = Field(default="0.0.0.0", alias="DRIP_HTTP_HOST")  # noqa: S104
    http_port: int = Field(default=6969, alias="DRIP_HTTP_PORT", ge=1, le=65535)
    cors_origins: str = Field(default="*", alias="DRIP_CORS_ORIGINS")

    # Observability
    metrics_port: int = Field(default=8080, alias="DRIP_METRICS_PORT", ge=1, le=65535)
    log_level: str = Field(default="INFO", alias="DRIP_LOG_LEVEL")
    log_format: str = Field(default="json", alias="DRIP_LOG_FORMAT")

    @field_validator("nyks_amount", "sats_amount", "relayer_sats_amount", "btc_block_height")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("relayer_address")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def allowed_origins(self) -> list[str]:
        """CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def dispense_policy(self) -> DispensePolicy:
        """Build the orchestrator policy from this configuration."""
        return DispensePolicy(
            window=timedelta(hours=self.window_hours),
            disburse_timeout=timedelta(seconds=self.disburse_timeout_seconds),
            relayer_address=self.relayer_address,
        )
