"""
File-backed store configuration.

Loads store definitions from a TOML file:

    [[stores]]
    store_id = "main-shop"
    store_name = "Main Shop"
    platform = "shopify"
    sync_interval_minutes = 30

    [stores.credentials]
    shop_domain = "main-shop"
    access_token = "${MAIN_SHOP_TOKEN}"

Credential values of the form `${VAR}` are resolved from the environment
when credentials are requested, so secrets never live in the file.
"""

import logging
import os
import re
import tomllib
from pathlib import Path
from typing import Any, Optional

import pydantic

from ..errors import ConfigurationError
from ..models import StoreConfig
from .base import ConfigStore

logger = logging.getLogger(__name__)

_ENV_REF_RE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


def resolve_env_reference(value: Any) -> str:
    """`${VAR}` -> value of VAR; other values are returned as strings."""
    text = str(value)
    match = _ENV_REF_RE.match(text.strip())
    if not match:
        return text
    name = match.group(1)
    resolved = os.getenv(name)
    if resolved is None:
        raise ConfigurationError(f"Environment variable {name} is not set")
    return resolved


def load_store_configs(path: Path) -> list[StoreConfig]:
    """Parse every `[[stores]]` entry of a TOML file."""
    if not path.exists():
        raise FileNotFoundError(f"Store config not found: {path}")

    with open(path, "rb") as f:
        data = tomllib.load(f)

    configs = []
    for raw in data.get("stores", []):
        try:
            configs.append(
                StoreConfig(
                    store_id=str(raw["store_id"]),
                    store_name=raw.get("store_name", raw["store_id"]),
                    platform=raw["platform"],
                    sync_interval_minutes=raw.get("sync_interval_minutes", 60),
                    enabled=raw.get("enabled", True),
                    credentials=raw.get("credentials", {}),
                )
            )
        except (KeyError, pydantic.ValidationError) as e:
            logger.warning(f"Skipping invalid store entry in {path}: {e}")

    return configs


class TomlConfigStore(ConfigStore):
    """Config store reading a TOML file on every call."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def get_store_config(self, store_id: str) -> Optional[StoreConfig]:
        for config in load_store_configs(self.path):
            if config.store_id == store_id:
                return config
        return None

    async def get_all_store_configs(self) -> list[StoreConfig]:
        return load_store_configs(self.path)

    async def get_decrypted_credentials(self, config: StoreConfig) -> dict[str, str]:
        blob = config.credentials or {}
        return {str(k): resolve_env_reference(v) for k, v in dict(blob).items()}
