"""Global configuration for qcgate.

Configuration lives in ``~/.config/qcgate/config.yaml`` (or under
``$QCGATE_HOME``). Environment variables override the file for the registry
and batch store paths.
"""

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel

CONFIG_FILENAME = "config.yaml"


class GlobalConfig(BaseModel):
    """Settings read from config.yaml."""

    default_product_registry_path: str | None = None
    default_batch_store_path: str | None = None
    log_format: Literal["console", "json"] = "console"
    log_level: str = "WARNING"
    legacy_average_fallback: float | None = None


def get_qcgate_home() -> Path:
    """Directory holding the global config and synced registry."""
    env_home = os.environ.get("QCGATE_HOME")
    if env_home:
        return Path(env_home)
    return Path.home() / ".config" / "qcgate"


def get_config_path() -> Path:
    return get_qcgate_home() / CONFIG_FILENAME


def get_product_registry_path() -> Path:
    """Where ``qcgate init`` syncs the product registry to."""
    return get_qcgate_home() / "product-registry"


def get_batch_store_path() -> Path:
    """Default directory for stored batches."""
    return get_qcgate_home() / "batches"


def load_global_config(path: Path | None = None) -> GlobalConfig:
    """Load config.yaml, returning defaults when it does not exist.

    Raises:
        ValueError: If the file is not a YAML mapping.
    """
    config_path = path or get_config_path()
    if not config_path.exists():
        return GlobalConfig()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")
    return GlobalConfig.model_validate(data)


def save_global_config(config: GlobalConfig, path: Path | None = None) -> Path:
    """Write config.yaml and return its path."""
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(exclude_none=True), f, sort_keys=False)
    return config_path


def resolve_product_registry(explicit: Path | None = None) -> Path:
    """Product registry path: explicit, then env, then config, then ./product-registry."""
    if explicit is not None:
        return explicit
    env_path = os.environ.get("QCGATE_PRODUCT_REGISTRY")
    if env_path:
        return Path(env_path)
    configured = load_global_config().default_product_registry_path
    if configured:
        return Path(configured)
    return Path("product-registry")


def resolve_batch_store(explicit: Path | None = None) -> Path:
    """Batch store path: explicit, then env, then config, then the home default."""
    if explicit is not None:
        return explicit
    env_path = os.environ.get("QCGATE_BATCH_STORE")
    if env_path:
        return Path(env_path)
    configured = load_global_config().default_batch_store_path
    if configured:
        return Path(configured)
    return get_batch_store_path()
