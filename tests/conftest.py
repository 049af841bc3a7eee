"""
Pytest configuration and shared fixtures for opamkit tests.
"""

import io
import tarfile
import zipfile
from typing import Dict, Optional

import pytest

from opamkit.catalog import InMemoryCatalog
from opamkit.manifest import Manifest, OpamSource


def make_manifest(
    name: str,
    version: str,
    toolchain_range: Optional[str] = None,
    opam_version: Optional[str] = None,
    **opam_fields,
) -> Manifest:
    """Build a catalog entry for ``@opam/<name>``."""
    peer_dependencies = {}
    if toolchain_range is not None:
        peer_dependencies["ocaml"] = toolchain_range
    return Manifest(
        name=f"@opam/{name}",
        version=version,
        peer_dependencies=peer_dependencies,
        opam=OpamSource(version=opam_version or version, **opam_fields),
    )


@pytest.fixture
def manifest_factory():
    """Factory building opam catalog entries."""
    return make_manifest


@pytest.fixture
def catalog_factory():
    """
    Factory building an in-memory catalog.

    Example:
        catalog = catalog_factory(lwt=["1.0.0", "1.1.0"])
    """

    def _build(**packages) -> InMemoryCatalog:
        catalog = InMemoryCatalog()
        for name, versions in packages.items():
            for version in versions:
                if isinstance(version, Manifest):
                    catalog.add(name, version)
                else:
                    catalog.add(name, make_manifest(name, version))
        return catalog

    return _build


def _tar_bytes(files: Dict[str, str], mode: str, root: str) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=mode) as tar:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name=f"{root}/{name}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def tar_gz_bytes():
    """Builder for a gzip tarball whose members live under one top-level directory."""

    def _build(files: Dict[str, str], root: str = "pkg-1.0.0") -> bytes:
        return _tar_bytes(files, "w:gz", root)

    return _build


@pytest.fixture
def tar_xz_bytes():
    """Builder for an xz tarball whose members live under one top-level directory."""

    def _build(files: Dict[str, str], root: str = "pkg-1.0.0") -> bytes:
        return _tar_bytes(files, "w:xz", root)

    return _build


@pytest.fixture
def zip_bytes():
    """Builder for a zip archive whose members live under one top-level directory."""

    def _build(files: Dict[str, str], root: str = "pkg-1.0.0") -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            for name, content in files.items():
                zf.writestr(f"{root}/{name}", content)
        return buffer.getvalue()

    return _build
