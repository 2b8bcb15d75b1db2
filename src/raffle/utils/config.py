"""
Configuration Management
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("config") / "raffle.conf"

# Per-network raffle parameters. The raffle section of the loaded
# configuration is layered on top of the preset for the configured chain.
NETWORK_CONFIG: Dict[int, Dict[str, Any]] = {
    31337: {
        "name": "hardhat",
        "entrance_fee": "0.01",
        "gas_lane": "0xd89b2bf150e3b9e13446986e571fb9cab24b13cea0a43ea20a6049a85cc807cc",
        "subscription_id": 0,
        "callback_gas_limit": 500000,
        "interval": 30,
    },
    5: {
        "name": "goerli",
        "vrf_coordinator": "0x2Ca8E0C643bDe4C2E08ab1fA0da3401AdAD7734D",
        "entrance_fee": "0.01",
        "gas_lane": "0x79d3d8832d904592c0bf9818b621522c988bb8b0c05cdc3b15aea1b6e8db0c15",
        "subscription_id": 0,
        "callback_gas_limit": 500000,
        "interval": 30,
    },
}

_ENV_SECTIONS = {
    "RAFFLE_": "raffle",
    "VRF_": "vrf",
    "KEEPER_": "keeper",
    "SERVER_": "server",
    "APP_": "app",
}


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from files and environment variables"""
    config: Dict[str, Any] = {}

    path = Path(config_file or os.getenv("RAFFLE_CONFIG_FILE", "") or DEFAULT_CONFIG_FILE)
    if path.exists():
        try:
            with open(path, 'r') as f:
                config.update(json.load(f))
            logger.info(f"Loaded configuration from {path}")
        except json.JSONDecodeError as e:
            logger.error(f"Error loading config file {path}: {e}")
            raise
    else:
        logger.warning(f"Config file {path} not found. Will only use environment variables.")

    # Override with environment variables, defined in .env
    config = _apply_env_overrides(config)

    logger.debug(f"Configuration after applying environment overrides: {json.dumps(config, indent=2)}")

    return config


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        for prefix, section in _ENV_SECTIONS.items():
            if key.startswith(prefix):
                # RAFFLE_CONFIG_FILE selects the file, it is not a setting
                if key == "RAFFLE_CONFIG_FILE":
                    break
                config.setdefault(section, {})[key[len(prefix):].lower()] = value
                break

    return config


def save_config(config: Dict[str, Any], config_file: Optional[str] = None):
    """Save configuration to file"""
    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        json.dump(config, f, indent=2)

    logger.info(f"Configuration saved to {path}")


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def network_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the network preset for ``app.chain_id`` with the raffle section."""
    chain_id = int(get_config_value(config, "app.chain_id", 31337))
    settings = dict(NETWORK_CONFIG.get(chain_id, {}))
    if not settings:
        logger.warning(f"No network preset for chain id {chain_id}; using raffle section only")
    settings.update(config.get("raffle", {}))
    settings["chain_id"] = chain_id
    return settings
