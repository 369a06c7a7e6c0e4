"""YAML config loader with environment overlay, startup validation and runtime get/set."""

import os
from pathlib import Path
from typing import Any

import yaml

from keeper.config.defaults import DEFAULT_MARKETS
from keeper.config.schema import KeeperConfig

# env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ARB_SEPOLIA_RPC": ("rpc", "url"),
    "KEEPER_PRIVATE_KEY": ("signer", "private_key"),
    "PERP_ENGINE_ADDRESS": ("contracts", "perp_engine"),
    "LIQUIDATION_ENGINE_ADDRESS": ("contracts", "liquidation_engine"),
    "INDEX_ENGINE_ADDRESS": ("contracts", "index_engine"),
    "VAULT_ADDRESS": ("contracts", "vault"),
    "KEEPER_MIN_PROFIT_USD": ("keeper", "min_profit_usd"),
    "KEEPER_GAS_PRICE_GWEI": ("gas", "max_fee_floor_gwei"),
}


class ConfigError(Exception):
    """Raised when the configuration cannot support the requested mode."""


def load_config(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> KeeperConfig:
    """Load and validate config from a YAML file, then overlay environment variables.

    A missing path yields defaults. If no markets are specified, injects DEFAULT_MARKETS.
    """
    raw: dict[str, Any] = {}
    if path is not None and Path(path).exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    if not raw.get("markets"):
        raw["markets"] = dict(DEFAULT_MARKETS)

    env = os.environ if environ is None else environ
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            raw.setdefault(section, {})[key] = value

    return KeeperConfig(**raw)


def validate_startup(config: KeeperConfig) -> None:
    """Reject configurations that cannot run safely. Raises ConfigError."""
    if config.signer.configured and not config.contracts.liquidation_engine:
        raise ConfigError(
            "Signer configured but contracts.liquidation_engine is not set"
        )


def get_config_value(config: KeeperConfig, dotted_key: str) -> Any:
    """Get a config value by dotted key path. E.g. 'keeper.min_profit_usd'."""
    parts = dotted_key.split(".")
    obj: Any = config
    for part in parts:
        if isinstance(obj, list):
            obj = obj[int(part)]
        elif isinstance(obj, dict):
            obj = obj[part]
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        else:
            raise KeyError(f"Config key not found: {dotted_key}")
    return obj


def set_config_value(config: KeeperConfig, dotted_key: str, value: Any) -> KeeperConfig:
    """Set a config value by dotted key path and re-validate.

    Returns a new KeeperConfig instance.
    """
    data = config.model_dump()
    parts = dotted_key.split(".")
    target = data
    for part in parts[:-1]:
        target = target[part]
    old_value = target.get(parts[-1])
    if isinstance(old_value, bool) and isinstance(value, str):
        value = value.lower() in ("1", "true", "yes", "on")
    elif isinstance(old_value, int) and isinstance(value, str):
        value = int(value)
    elif isinstance(old_value, float) and isinstance(value, str):
        value = float(value)
    target[parts[-1]] = value
    return KeeperConfig(**data)
