"""
Version catalogs: the candidate versions known for each opam package.

The resolver only reads from a catalog. Keeping the catalog up to date
(cloning or pulling an opam repository mirror) happens outside of opamkit,
before ``sync_repository`` returns.

Directory catalogs read one file per package::

    <root>/lwt.json
    <root>/lwt.yaml

each holding a ``versions`` mapping of version -> manifest::

    versions:
      4.1.0:
        peerDependencies:
          ocaml: ">= 4.2.0"
        opam:
          version: "4.1.0"
          url: https://github.com/ocsigen/lwt/archive/4.1.0.tar.gz
          checksum: e919bee206f18b3d49250ecf9584fde7
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml

from opamkit.config.parser import DEFAULT_OPAM_SCOPE, OpamKitConfig
from opamkit.core.exceptions import CatalogError, ConfigError
from opamkit.manifest import Manifest

logger = logging.getLogger(__name__)


class VersionCatalog(ABC):
    """
    Read-only lookup of candidate versions by unscoped package name.

    Example:
        class StaticCatalog(VersionCatalog):
            def get_candidates(self, name: str) -> List[Manifest]:
                return [Manifest(name=f"@opam/{name}", version="1.0.0")]
    """

    @abstractmethod
    def get_candidates(self, name: str) -> List[Manifest]:
        """
        Get every known version of a package.

        Args:
            name: Unscoped package name (e.g., 'lwt')

        Returns:
            Candidate manifests in no particular order; empty when the
            package is unknown
        """
        pass

    def get_manifest(self, name: str, version: str) -> Optional[Manifest]:
        """Get the candidate with an exact version, or None."""
        for candidate in self.get_candidates(name):
            if candidate.version == version:
                return candidate
        return None

    def sync_repository(self) -> None:
        """Bring the underlying repository up to date. No-op by default."""
        return None


class InMemoryCatalog(VersionCatalog):
    """Catalog backed by manifests registered in memory."""

    def __init__(self, manifests: Optional[Dict[str, Iterable[Manifest]]] = None):
        self._manifests: Dict[str, List[Manifest]] = {}
        for name, candidates in (manifests or {}).items():
            for manifest in candidates:
                self.add(name, manifest)

    def add(self, name: str, manifest: Manifest) -> None:
        self._manifests.setdefault(name, []).append(manifest)

    def get_candidates(self, name: str) -> List[Manifest]:
        return list(self._manifests.get(name, []))


class DirectoryCatalog(VersionCatalog):
    """
    Catalog reading ``<root>/<name>.json`` or ``<root>/<name>.yaml`` files.

    Parsed files are cached per package name for the lifetime of the catalog.
    """

    SUFFIXES = (".json", ".yaml", ".yml")

    def __init__(self, root: Path, scope: str = DEFAULT_OPAM_SCOPE):
        self.root = Path(root)
        self.scope = scope
        self._cache: Dict[str, List[Manifest]] = {}

    @classmethod
    def from_config(cls, config: OpamKitConfig) -> "DirectoryCatalog":
        """
        Catalog over the configured ``repository`` directory.

        Raises:
            ConfigError: If no repository is configured
        """
        if config.repository is None:
            raise ConfigError("No opam repository configured (set 'repository')")
        return cls(config.repository, scope=config.opam_scope)

    def get_candidates(self, name: str) -> List[Manifest]:
        if name not in self._cache:
            self._cache[name] = self._load(name)
        return list(self._cache[name])

    def sync_repository(self) -> None:
        """Drop cached package files so the next lookup re-reads them."""
        self._cache.clear()

    def _find_file(self, name: str) -> Optional[Path]:
        for suffix in self.SUFFIXES:
            path = self.root / f"{name}{suffix}"
            if path.is_file():
                return path
        return None

    def _load(self, name: str) -> List[Manifest]:
        path = self._find_file(name)
        if path is None:
            logger.debug(f"No catalog file for {name} in {self.root}")
            return []

        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise CatalogError(f"Invalid catalog file {path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("versions"), dict):
            raise CatalogError(f"Catalog file {path} must contain a 'versions' mapping")

        candidates = []
        for version, entry in data["versions"].items():
            entry = dict(entry or {})
            entry.setdefault("name", f"@{self.scope}/{name}")
            entry.setdefault("version", str(version))
            try:
                candidates.append(Manifest.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                raise CatalogError(
                    f"Invalid entry for {name}@{version} in {path}: {e}"
                ) from e

        logger.debug(f"Loaded {len(candidates)} versions of {name} from {path}")
        return candidates
