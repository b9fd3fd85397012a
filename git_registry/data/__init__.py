"""
Configuration and on-disk layout for the git-backed registry.

This package is responsible for:
* Determining the data directory (via env var + sensible default).
* Loading and persisting the registry catalog (scopes and packages).
"""
