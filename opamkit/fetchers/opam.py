"""
Fetcher for opam packages.

Steps, in order:

1. Parse the reference and look up the catalog manifest for its version
2. If the manifest has a source URL, download the archive to a temporary
   file while computing its digest, and verify it against the expected
   checksum (nothing is unpacked on mismatch)
3. Extract the archive into the destination, dropping its top-level directory
4. Write ``package.json`` with the manifest
5. Write override files embedded in the manifest
6. Apply embedded patches, in order
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from opamkit.catalog import VersionCatalog
from opamkit.config.parser import OpamKitConfig
from opamkit.core.download import HttpClient, download_file
from opamkit.core.exceptions import NotFoundError
from opamkit.core.filesystem import detect_archive_format, extract_archive, write_text_file
from opamkit.core.locking import LockManager
from opamkit.core.patching import apply_patch
from opamkit.fetchers.base import BaseFetcher, FetchResult
from opamkit.manifest import Manifest, OpamFile, OpamSource
from opamkit.resolvers.opam import lookup_manifest, parse_reference

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "package.json"


class OpamFetcher(BaseFetcher):
    """
    Materializes opam packages from their source archives.

    Example:
        >>> fetcher = OpamFetcher(DirectoryCatalog(Path('opam-repo')))
        >>> result = fetcher.fetch(
        ...     '@opam/lwt@4.1.0-4.1.0.tgz',
        ...     'e919bee206f18b3d49250ecf9584fde7',
        ...     Path('node_modules/@opam/lwt'),
        ... )
    """

    def __init__(
        self,
        catalog: VersionCatalog,
        config: Optional[OpamKitConfig] = None,
        lock_manager: Optional[LockManager] = None,
        client: Optional[HttpClient] = None,
    ):
        self.config = config or OpamKitConfig.default()
        if lock_manager is None:
            lock_manager = LockManager(self.config.lock_dir)
        super().__init__(lock_manager)
        self.catalog = catalog
        self.client = client or HttpClient(timeout=self.config.download.timeout)

    def _fetch(
        self, reference: str, expected_hash: Optional[str], dest: Path
    ) -> FetchResult:
        resolution = parse_reference(reference)
        manifest = lookup_manifest(self.catalog, resolution.name, resolution.version)
        if manifest is None:
            raise NotFoundError(
                reference, f"no manifest for version {resolution.version}"
            )

        opam = manifest.opam or OpamSource(version=manifest.version)
        digest = expected_hash or ""

        if opam.url:
            digest = self._fetch_tarball(opam, expected_hash or opam.checksum, dest)

        # Source archives carry no package.json of their own
        write_text_file(dest, MANIFEST_FILENAME, json.dumps(manifest.to_dict(), indent=2))

        for override in opam.files:
            logger.debug(f"Writing override file {override.name}")
            write_text_file(dest, override.name, override.content)

        for patch in opam.patches:
            self._apply_patch(patch, dest)

        logger.info(f"Fetched {manifest.name}@{manifest.version} into {dest}")
        return FetchResult(hash=digest, resolved=None)

    def _fetch_tarball(
        self, opam: OpamSource, checksum: Optional[str], dest: Path
    ) -> str:
        """Download, verify and unpack the source archive. Returns its digest."""
        archive_format = detect_archive_format(urlparse(opam.url).path)

        fd, tarball = tempfile.mkstemp(prefix="opamkit-", suffix=".tarball")
        os.close(fd)
        tarball_path = Path(tarball)

        try:
            digest = download_file(
                opam.url,
                tarball_path,
                expected_checksum=checksum,
                algorithm=self.config.download.checksum_algorithm,
                max_retries=self.config.download.max_retries,
                client=self.client,
            )
            extract_archive(tarball_path, dest, archive_format, strip_components=1)
        finally:
            if tarball_path.exists():
                tarball_path.unlink()

        return digest

    def _apply_patch(self, patch: OpamFile, dest: Path) -> None:
        fd, patch_file = tempfile.mkstemp(dir=dest, prefix=".opamkit-", suffix=".patch")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(patch.content)
            logger.debug(f"Applying patch {patch.name}")
            apply_patch(Path(patch_file), dest)
        finally:
            os.unlink(patch_file)


def read_fetched_manifest(dest: Path) -> Manifest:
    """Manifest written into a fetched destination."""
    with open(Path(dest) / MANIFEST_FILENAME, "r", encoding="utf-8") as f:
        return Manifest.from_dict(json.load(f))
