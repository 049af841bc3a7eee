"""YAML configuration parser for opamkit.

This module provides parsing and validation for opamkit.yaml configuration files.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from opamkit.core.exceptions import ConfigError

CONFIG_FILENAME = "opamkit.yaml"
LOCKFILE_FILENAME = "opamkit.lock"

DEFAULT_REGISTRY = "npm"
DEFAULT_OPAM_SCOPE = "opam"
DEFAULT_TOOLCHAIN_PACKAGE = "ocaml"

SUPPORTED_ALGORITHMS = ["md5", "sha1", "sha256", "sha512"]


@dataclass
class DownloadConfig:
    """Download behaviour for the fetch pipeline."""

    timeout: int = 30
    max_retries: int = 3
    checksum_algorithm: str = "md5"


@dataclass
class OpamKitConfig:
    """Complete opamkit configuration."""

    version: int = 1
    registry: str = DEFAULT_REGISTRY
    opam_scope: str = DEFAULT_OPAM_SCOPE
    toolchain_package: str = DEFAULT_TOOLCHAIN_PACKAGE
    toolchain_version: Optional[str] = None  # installed compiler, e.g. '4.6.1'
    repository: Optional[Path] = None  # directory read by DirectoryCatalog
    lock_dir: Optional[Path] = None
    download: DownloadConfig = field(default_factory=DownloadConfig)

    @classmethod
    def default(cls) -> "OpamKitConfig":
        """Configuration used when no opamkit.yaml is present."""
        return cls()


def parse_config(config_path: Path) -> OpamKitConfig:
    """
    Parse opamkit.yaml configuration file.

    Args:
        config_path: Path to opamkit.yaml

    Returns:
        Parsed and validated configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}") from e

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    return _parse_and_validate(data, base_dir=config_path.parent)


def load_project_config(project_root: Path) -> OpamKitConfig:
    """Load ``opamkit.yaml`` from project_root, or defaults when absent."""
    config_path = Path(project_root) / CONFIG_FILENAME
    if not config_path.exists():
        return OpamKitConfig.default()
    return parse_config(config_path)


def _parse_and_validate(data: dict, base_dir: Path) -> OpamKitConfig:
    """Parse and validate configuration data."""
    if "version" not in data:
        raise ConfigError("Missing required field: version")

    if data["version"] != 1:
        raise ConfigError(f"Unsupported version: {data['version']} (expected 1)")

    for key in ("registry", "opam_scope", "toolchain_package"):
        if key in data and (not isinstance(data[key], str) or not data[key]):
            raise ConfigError(f"{key} must be a non-empty string")

    toolchain_version = data.get("toolchain_version")
    if toolchain_version is not None:
        toolchain_version = str(toolchain_version)

    return OpamKitConfig(
        version=data["version"],
        registry=data.get("registry", DEFAULT_REGISTRY),
        opam_scope=data.get("opam_scope", DEFAULT_OPAM_SCOPE),
        toolchain_package=data.get("toolchain_package", DEFAULT_TOOLCHAIN_PACKAGE),
        toolchain_version=toolchain_version,
        repository=_parse_path(data.get("repository"), base_dir),
        lock_dir=_parse_path(data.get("lock_dir"), base_dir),
        download=_parse_download_config(data.get("download", {})),
    )


def _parse_path(value: Optional[str], base_dir: Path) -> Optional[Path]:
    """Resolve a configured path relative to the config file's directory."""
    if value is None:
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def _parse_download_config(data: dict) -> DownloadConfig:
    """Parse download configuration."""
    if not isinstance(data, dict):
        raise ConfigError("download must be a mapping")

    algorithm = data.get("checksum_algorithm", "md5")
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ConfigError(
            f"Invalid checksum algorithm: {algorithm} "
            f"(expected one of {SUPPORTED_ALGORITHMS})"
        )

    timeout = data.get("timeout", 30)
    max_retries = data.get("max_retries", 3)
    if not isinstance(timeout, int) or timeout <= 0:
        raise ConfigError("download.timeout must be a positive integer")
    if not isinstance(max_retries, int) or max_retries <= 0:
        raise ConfigError("download.max_retries must be a positive integer")

    return DownloadConfig(
        timeout=timeout, max_retries=max_retries, checksum_algorithm=algorithm
    )
