"""
Tests for opamkit.yaml parsing.
"""

from pathlib import Path

import pytest

from opamkit.config.parser import (
    CONFIG_FILENAME,
    DownloadConfig,
    OpamKitConfig,
    load_project_config,
    parse_config,
)
from opamkit.core.exceptions import ConfigError


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / CONFIG_FILENAME
    path.write_text(text, encoding="utf-8")
    return path


class TestParseConfig:
    """Test parse_config function."""

    def test_minimal_config_uses_defaults(self, tmp_path):
        config = parse_config(write_config(tmp_path, "version: 1\n"))

        assert config == OpamKitConfig.default()
        assert config.registry == "npm"
        assert config.opam_scope == "opam"
        assert config.toolchain_package == "ocaml"
        assert config.toolchain_version is None
        assert config.download == DownloadConfig()

    def test_full_config(self, tmp_path):
        config = parse_config(
            write_config(
                tmp_path,
                """
version: 1
registry: internal
opam_scope: opam-alpha
toolchain_version: 4.6.1
repository: ./opam-repo
lock_dir: /var/lock/opamkit
download:
  timeout: 60
  max_retries: 5
  checksum_algorithm: sha256
""",
            )
        )

        assert config.registry == "internal"
        assert config.opam_scope == "opam-alpha"
        assert config.toolchain_version == "4.6.1"
        assert config.repository == tmp_path / "opam-repo"
        assert config.lock_dir == Path("/var/lock/opamkit")
        assert config.download == DownloadConfig(60, 5, "sha256")

    def test_numeric_toolchain_version_becomes_string(self, tmp_path):
        config = parse_config(write_config(tmp_path, "version: 1\ntoolchain_version: 4.2\n"))

        assert config.toolchain_version == "4.2"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            parse_config(tmp_path / CONFIG_FILENAME)

    def test_empty_file(self, tmp_path):
        with pytest.raises(ConfigError, match="empty"):
            parse_config(write_config(tmp_path, ""))

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match="mapping"):
            parse_config(write_config(tmp_path, "- version\n"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            parse_config(write_config(tmp_path, "version: [1\n"))

    def test_missing_version(self, tmp_path):
        with pytest.raises(ConfigError, match="Missing required field: version"):
            parse_config(write_config(tmp_path, "registry: npm\n"))

    def test_unsupported_version(self, tmp_path):
        with pytest.raises(ConfigError, match="Unsupported version"):
            parse_config(write_config(tmp_path, "version: 2\n"))

    def test_empty_scope_rejected(self, tmp_path):
        with pytest.raises(ConfigError, match="opam_scope"):
            parse_config(write_config(tmp_path, "version: 1\nopam_scope: ''\n"))

    def test_invalid_checksum_algorithm(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid checksum algorithm"):
            parse_config(
                write_config(tmp_path, "version: 1\ndownload:\n  checksum_algorithm: crc\n")
            )

    def test_invalid_timeout(self, tmp_path):
        with pytest.raises(ConfigError, match="timeout"):
            parse_config(write_config(tmp_path, "version: 1\ndownload:\n  timeout: -1\n"))


class TestLoadProjectConfig:
    """Test load_project_config function."""

    def test_defaults_without_file(self, tmp_path):
        assert load_project_config(tmp_path) == OpamKitConfig.default()

    def test_reads_file(self, tmp_path):
        write_config(tmp_path, "version: 1\nregistry: mirror\n")

        assert load_project_config(tmp_path).registry == "mirror"
