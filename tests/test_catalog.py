"""
Tests for version catalogs.
"""

import json

import pytest

from opamkit.catalog import DirectoryCatalog, InMemoryCatalog
from opamkit.config.parser import OpamKitConfig, parse_config
from opamkit.core.exceptions import CatalogError, ConfigError
from opamkit.manifest import Manifest

LWT_YAML = """\
versions:
  4.0.0:
    peerDependencies:
      ocaml: ">= 4.2.0"
    opam:
      version: "4.0.0"
      url: https://example.com/lwt-4.0.0.tar.gz
      checksum: e919bee206f18b3d49250ecf9584fde7
  4.1.0:
    opam:
      version: "4.1.0"
"""


class TestInMemoryCatalog:
    """Test InMemoryCatalog."""

    def test_candidates(self):
        catalog = InMemoryCatalog(
            {"lwt": [Manifest(name="@opam/lwt", version="4.0.0")]}
        )
        catalog.add("lwt", Manifest(name="@opam/lwt", version="4.1.0"))

        assert [m.version for m in catalog.get_candidates("lwt")] == ["4.0.0", "4.1.0"]

    def test_unknown_package(self):
        assert InMemoryCatalog().get_candidates("lwt") == []

    def test_get_manifest(self):
        catalog = InMemoryCatalog({"lwt": [Manifest(name="@opam/lwt", version="4.0.0")]})

        assert catalog.get_manifest("lwt", "4.0.0").version == "4.0.0"
        assert catalog.get_manifest("lwt", "4.1.0") is None

    def test_sync_is_noop(self):
        InMemoryCatalog().sync_repository()


class TestDirectoryCatalog:
    """Test DirectoryCatalog."""

    def test_yaml_file(self, tmp_path):
        (tmp_path / "lwt.yaml").write_text(LWT_YAML)

        candidates = DirectoryCatalog(tmp_path).get_candidates("lwt")

        by_version = {m.version: m for m in candidates}
        assert set(by_version) == {"4.0.0", "4.1.0"}
        lwt = by_version["4.0.0"]
        assert lwt.name == "@opam/lwt"
        assert lwt.peer_dependencies == {"ocaml": ">= 4.2.0"}
        assert lwt.opam.url == "https://example.com/lwt-4.0.0.tar.gz"
        assert lwt.opam.checksum == "e919bee206f18b3d49250ecf9584fde7"

    def test_json_file(self, tmp_path):
        data = {"versions": {"1.3.0": {"opam": {"version": "1.3"}}}}
        (tmp_path / "result.json").write_text(json.dumps(data))

        candidates = DirectoryCatalog(tmp_path).get_candidates("result")

        assert len(candidates) == 1
        assert candidates[0].version == "1.3.0"
        assert candidates[0].ordering_version == "1.3"

    def test_custom_scope(self, tmp_path):
        (tmp_path / "lwt.yaml").write_text(LWT_YAML)

        catalog = DirectoryCatalog(tmp_path, scope="opam-alpha")

        assert catalog.get_candidates("lwt")[0].name == "@opam-alpha/lwt"

    def test_missing_package(self, tmp_path):
        assert DirectoryCatalog(tmp_path).get_candidates("lwt") == []

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "lwt.yaml").write_text("versions: [unclosed\n")

        with pytest.raises(CatalogError, match="Invalid catalog file"):
            DirectoryCatalog(tmp_path).get_candidates("lwt")

    def test_invalid_json(self, tmp_path):
        (tmp_path / "lwt.json").write_text("{not json")

        with pytest.raises(CatalogError):
            DirectoryCatalog(tmp_path).get_candidates("lwt")

    def test_missing_versions_mapping(self, tmp_path):
        (tmp_path / "lwt.yaml").write_text("name: lwt\n")

        with pytest.raises(CatalogError, match="versions"):
            DirectoryCatalog(tmp_path).get_candidates("lwt")

    def test_invalid_entry(self, tmp_path):
        (tmp_path / "lwt.yaml").write_text('versions:\n  4.0.0:\n    name: ""\n')

        with pytest.raises(CatalogError, match="lwt@4.0.0"):
            DirectoryCatalog(tmp_path).get_candidates("lwt")

    def test_cached_until_sync(self, tmp_path):
        path = tmp_path / "lwt.yaml"
        path.write_text(LWT_YAML)
        catalog = DirectoryCatalog(tmp_path)
        assert len(catalog.get_candidates("lwt")) == 2

        path.write_text('versions:\n  5.0.0:\n    opam:\n      version: "5.0.0"\n')
        assert len(catalog.get_candidates("lwt")) == 2

        catalog.sync_repository()
        assert [m.version for m in catalog.get_candidates("lwt")] == ["5.0.0"]

    def test_from_config(self, tmp_path):
        repo = tmp_path / "opam-repo"
        repo.mkdir()
        (repo / "lwt.yaml").write_text(LWT_YAML)
        config_path = tmp_path / "opamkit.yaml"
        config_path.write_text("version: 1\nopam_scope: opam-alpha\nrepository: opam-repo\n")

        catalog = DirectoryCatalog.from_config(parse_config(config_path))

        assert catalog.root == repo
        assert catalog.get_candidates("lwt")[0].name == "@opam-alpha/lwt"

    def test_from_config_without_repository(self):
        with pytest.raises(ConfigError, match="repository"):
            DirectoryCatalog.from_config(OpamKitConfig.default())
