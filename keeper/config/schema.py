"""Pydantic v2 configuration schema with strict validation."""

from enum import StrEnum

from eth_utils import is_address
from pydantic import BaseModel, Field, SecretStr, field_validator


class GasFailurePolicy(StrEnum):
    GROSS_ONLY = "gross-only"  # treat a failed gas estimate as zero cost
    FAIL_CLOSED = "fail-closed"  # treat a failed gas estimate as unprofitable


class RpcConfig(BaseModel):
    model_config = {"extra": "forbid"}

    url: str = "https://sepolia-rollup.arbitrum.io/rpc"
    chain_id: int = Field(default=421614, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    log_poll_interval_seconds: float = Field(default=2.0, gt=0.0)
    receipt_poll_interval_seconds: float = Field(default=1.0, gt=0.0)
    max_log_block_range: int = Field(default=2000, ge=1)


class ContractsConfig(BaseModel):
    model_config = {"extra": "forbid"}

    perp_engine: str = ""
    liquidation_engine: str = ""
    index_engine: str = ""
    vault: str = ""

    @field_validator("perp_engine", "liquidation_engine", "index_engine", "vault")
    @classmethod
    def _check_address(cls, value: str) -> str:
        if value and not is_address(value):
            raise ValueError(f"not a valid address: {value}")
        return value


class GasConfig(BaseModel):
    model_config = {"extra": "forbid"}

    eth_price_usd: float = Field(default=3000.0, gt=0.0)
    max_fee_floor_gwei: float = Field(default=0.1, gt=0.0)
    priority_fee_floor_gwei: float = Field(default=0.01, ge=0.0)
    base_fee_multiplier: float = Field(default=1.2, ge=1.0)
    gas_limit_buffer: float = Field(default=1.2, ge=1.0)


class RetryConfig(BaseModel):
    model_config = {"extra": "forbid"}

    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=1.0, ge=0.0)
    max_delay_seconds: float = Field(default=30.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, gt=1.0)


class RetrySettings(BaseModel):
    model_config = {"extra": "forbid"}

    default: RetryConfig = RetryConfig()
    gas: RetryConfig = RetryConfig(max_attempts=2, base_delay_seconds=1.0)
    fill: RetryConfig = RetryConfig(max_attempts=2, base_delay_seconds=0.5)


class KeeperSettings(BaseModel):
    model_config = {"extra": "forbid"}

    min_profit_usd: float = Field(default=1.0, ge=0.0)
    poll_interval_ms: int = Field(default=5000, ge=100)
    event_settle_ms: int = Field(default=100, ge=0)
    confirmation_timeout_seconds: float = Field(default=60.0, gt=0.0)
    shutdown_grace_seconds: float = Field(default=1.0, ge=0.0)
    restart_cooldown_seconds: float = Field(default=5.0, ge=0.0)
    gas_failure_policy: GasFailurePolicy = GasFailurePolicy.GROSS_ONLY


class SignerConfig(BaseModel):
    model_config = {"extra": "forbid"}

    private_key: SecretStr | None = None

    @property
    def configured(self) -> bool:
        return self.private_key is not None and bool(self.private_key.get_secret_value())


class KeeperConfig(BaseModel):
    model_config = {"extra": "forbid"}

    rpc: RpcConfig = RpcConfig()
    contracts: ContractsConfig = ContractsConfig()
    gas: GasConfig = GasConfig()
    keeper: KeeperSettings = KeeperSettings()
    retry: RetrySettings = RetrySettings()
    signer: SignerConfig = SignerConfig()
    markets: dict[str, str] = {}
