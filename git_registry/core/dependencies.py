from pathlib import Path
from typing import Optional

from fastapi import Request

from git_registry.data.catalog import get_config_path, get_data_dir, load_registry_config
from git_registry.services.registry import Registry
from git_registry.storage.vcs_backend import VersionControlBackend


def build_registry(
    data_dir: Optional[Path] = None,
    config_path: Optional[Path] = None,
    backend: Optional[VersionControlBackend] = None,
) -> Registry:
    """
    Load the catalog and construct the Registry rooted at the data directory.
    Raises CatalogError if the catalog is invalid.
    """
    data_dir = data_dir or get_data_dir()
    config = load_registry_config(config_path or get_config_path(data_dir))
    return Registry(root=data_dir, config=config, backend=backend)


def get_registry(request: Request) -> Registry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("Registry has not been initialized")
    return registry
