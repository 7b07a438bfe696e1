"""
Configuration loading for the orderbook arbitrage bot.

Reads a YAML file, layers ``ARB_*`` environment overrides on top (a
``.env`` file is honoured through python-dotenv) and validates the result
against ``BotConfig``.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from .config_schema import BotConfig, validate_bot_config
from .exceptions import ConfigurationError
from .utils import get_logger

logger = get_logger(__name__)

# env var -> (config key, parser)
ENV_OVERRIDES = {
    "ARB_RPC": ("rpc", lambda v: [u.strip() for u in v.split(",") if u.strip()]),
    "ARB_QUOTE_RPC": (
        "quote_rpc",
        lambda v: [u.strip() for u in v.split(",") if u.strip()],
    ),
    "ARB_FLASHBOT_RPC": ("flashbot_rpc", str),
    "ARB_HOPS": ("hops", int),
    "ARB_RETRIES": ("retries", int),
    "ARB_GAS_COVERAGE": ("gas_coverage_percentage", str),
    "ARB_MAX_RATIO": ("max_ratio", lambda v: v.strip().lower() in ("1", "true", "yes")),
}

SECRET_ENV_VARS = ("BOT_PRIVATE_KEY", "BOT_MNEMONIC")


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    return config_dict


def apply_env_overrides(
    config_dict: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Return a copy of ``config_dict`` with ``ARB_*`` variables applied."""
    environ = os.environ if environ is None else environ
    result = dict(config_dict)
    for env_var, (key, parse) in ENV_OVERRIDES.items():
        raw = environ.get(env_var)
        if raw is None or raw == "":
            continue
        try:
            result[key] = parse(raw)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {env_var}: {e}")
        logger.debug(f"Config override from {env_var}: {key}")
    return result


def load_bot_config(
    config_path: Union[str, Path], env_file: Optional[Union[str, Path]] = None
) -> BotConfig:
    """
    Load and validate a bot configuration file.

    Args:
        config_path: Path to the YAML configuration file
        env_file: Optional .env file loaded before overrides are applied

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    if env_file is not None:
        load_dotenv(env_file)

    config_dict = apply_env_overrides(load_yaml_config(config_path))

    try:
        config = validate_bot_config(config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}",
            details={"errors": e.errors(include_url=False, include_input=False)},
        )

    logger.info(
        f"Loaded config for chain {config.chain.id}: hops={config.hops}, "
        f"retries={config.retries}, gas_coverage={config.gas_coverage_percentage}%"
    )
    return config


def load_secrets(
    config: Optional[BotConfig] = None, environ: Optional[Mapping[str, str]] = None
) -> List[str]:
    """Values that must never appear in logs: keys, mnemonic and rpc urls."""
    environ = os.environ if environ is None else environ
    secrets = [environ[name] for name in SECRET_ENV_VARS if environ.get(name)]
    if config is not None:
        secrets.extend(config.rpc)
        secrets.extend(config.quote_rpc or [])
        if config.flashbot_rpc:
            secrets.append(config.flashbot_rpc)
    return secrets
