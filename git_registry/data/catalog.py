from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from git_registry.domain.errors import CatalogError
from git_registry.domain.models import RegistryConfig

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "GIT_REGISTRY_DATA_DIR"
CONFIG_ENV_VAR = "GIT_REGISTRY_CONFIG"

# Resolve project root (not the Python package root)
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"

DEFAULT_CONFIG_FILENAME = "registry.json"


def get_data_dir() -> Path:
    """
    Determine the data directory path.

    Priority:
    1. Environment variable GIT_REGISTRY_DATA_DIR
    2. '<project root>/data'

    The directory is created if it does not exist yet.
    """
    env_path = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_path:
        data_dir = Path(env_path).expanduser().resolve()
    else:
        data_dir = _DEFAULT_DATA_DIR
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_config_path(data_dir: Optional[Path] = None) -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return (data_dir or get_data_dir()) / DEFAULT_CONFIG_FILENAME


def load_registry_config(path: Path) -> RegistryConfig:
    """
    Load the registry catalog from ``path`` (JSON, or YAML for .yaml/.yml).

    A missing file is created with an empty catalog so operators have a
    template to fill in. An unreadable or invalid file raises CatalogError.
    """
    if not path.exists():
        logger.warning(f"No registry config at {path}; writing an empty catalog")
        config = RegistryConfig()
        save_registry_config(config, path)
        return config

    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(text) or {}
        else:
            raw = json.loads(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise CatalogError(f"Failed to read registry config {path}: {e}") from e

    try:
        config = RegistryConfig.model_validate(raw)
    except ValidationError as e:
        raise CatalogError(f"Invalid registry config {path}: {e}") from e

    package_count = sum(len(scope.packages) for scope in config.scopes.values())
    logger.info(f"Loaded {package_count} package(s) in {len(config.scopes)} scope(s) from {path}")
    return config


def save_registry_config(config: RegistryConfig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix in (".yaml", ".yml"):
        path.write_text(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False), encoding="utf-8")
    else:
        path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
