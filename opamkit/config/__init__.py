"""
Configuration for opamkit.

Example:
    >>> from pathlib import Path
    >>> from opamkit.config import load_project_config
    >>> config = load_project_config(Path('.'))
    >>> config.registry
    'npm'
"""

from opamkit.config.parser import (
    CONFIG_FILENAME,
    LOCKFILE_FILENAME,
    DEFAULT_REGISTRY,
    DEFAULT_OPAM_SCOPE,
    DEFAULT_TOOLCHAIN_PACKAGE,
    DownloadConfig,
    OpamKitConfig,
    parse_config,
    load_project_config,
)

__all__ = [
    "CONFIG_FILENAME",
    "LOCKFILE_FILENAME",
    "DEFAULT_REGISTRY",
    "DEFAULT_OPAM_SCOPE",
    "DEFAULT_TOOLCHAIN_PACKAGE",
    "DownloadConfig",
    "OpamKitConfig",
    "parse_config",
    "load_project_config",
]
