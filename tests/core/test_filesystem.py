"""
Unit tests for filesystem module.
"""

import io
import logging
import tarfile
import zipfile

import pytest

from opamkit.core.exceptions import ArchiveExtractionError, InsecureArchiveError
from opamkit.core.filesystem import (
    atomic_write,
    clear_directory,
    detect_archive_format,
    extract_archive,
    safe_rmtree,
    write_text_file,
)


class TestDetectArchiveFormat:
    """Test archive format detection from source file names."""

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("lwt-4.1.0.tar.gz", "gzip"),
            ("lwt-4.1.0.tgz", "gzip"),
            ("lwt-4.1.0.tar.bz2", "bzip"),
            ("lwt-4.1.0.tar.bz", "bzip"),
            ("lwt-4.1.0.tbz", "bzip"),
            ("lwt-4.1.0.zip", "zip"),
            ("lwt-4.1.0.tar.xz", "xz"),
            ("https://github.com/ocsigen/lwt/archive/4.1.0.TAR.GZ", "gzip"),
        ],
    )
    def test_known_suffixes(self, filename, expected):
        assert detect_archive_format(filename) == expected

    def test_unknown_suffix_falls_back_to_gzip(self, caplog):
        """
        Unknown suffixes are assumed to be gzip.

        This can silently misdetect e.g. a bzip2 payload served from a
        suffix-less URL; the mistake only surfaces at extraction. The fallback
        is logged so the guess is visible.
        """
        with caplog.at_level(logging.WARNING, logger="opamkit.core.filesystem"):
            assert detect_archive_format("https://example.com/download?id=42") == "gzip"

        assert "assuming gzip" in caplog.text

    def test_misdetected_payload_fails_at_extraction(self, tmp_path):
        """A bzip2 tarball behind an unknown suffix is treated as gzip and fails."""
        archive = tmp_path / "source"
        with tarfile.open(archive, "w:bz2") as tar:
            data = b"content"
            info = tarfile.TarInfo("pkg/file.txt")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))

        with pytest.raises(ArchiveExtractionError):
            extract_archive(archive, tmp_path / "out", detect_archive_format(archive.name))


class TestExtractArchive:
    """Test archive extraction."""

    def test_extract_tar_gz_strips_top_level(self, tmp_path, tar_gz_bytes):
        archive = tmp_path / "pkg.tar.gz"
        archive.write_bytes(tar_gz_bytes({"src/lwt.ml": "let x = 1", "opam": "opam"}))
        dest = tmp_path / "out"

        extract_archive(archive, dest, strip_components=1)

        assert (dest / "src" / "lwt.ml").read_text() == "let x = 1"
        assert (dest / "opam").exists()
        assert not (dest / "pkg-1.0.0").exists()

    def test_extract_tar_gz_without_strip(self, tmp_path, tar_gz_bytes):
        archive = tmp_path / "pkg.tgz"
        archive.write_bytes(tar_gz_bytes({"README": "hi"}))
        dest = tmp_path / "out"

        extract_archive(archive, dest)

        assert (dest / "pkg-1.0.0" / "README").read_text() == "hi"

    def test_extract_tar_xz(self, tmp_path, tar_xz_bytes):
        archive = tmp_path / "pkg.tar.xz"
        archive.write_bytes(tar_xz_bytes({"README": "xz"}))
        dest = tmp_path / "out"

        extract_archive(archive, dest, strip_components=1)

        assert (dest / "README").read_text() == "xz"

    def test_extract_zip_strips_top_level(self, tmp_path, zip_bytes):
        archive = tmp_path / "pkg.zip"
        archive.write_bytes(zip_bytes({"dir/file.txt": "zipped"}))
        dest = tmp_path / "out"

        extract_archive(archive, dest, strip_components=1)

        assert (dest / "dir" / "file.txt").read_text() == "zipped"

    def test_explicit_format_overrides_name(self, tmp_path, tar_gz_bytes):
        archive = tmp_path / "tarball"
        archive.write_bytes(tar_gz_bytes({"README": "hi"}))
        dest = tmp_path / "out"

        extract_archive(archive, dest, "gzip", strip_components=1)

        assert (dest / "README").exists()

    def test_extract_missing_archive(self, tmp_path):
        with pytest.raises(ArchiveExtractionError, match="Archive not found"):
            extract_archive(tmp_path / "missing.tar.gz", tmp_path / "out")

    def test_extract_malicious_zip(self, tmp_path):
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("pkg/../../evil.txt", "evil")

        with pytest.raises(InsecureArchiveError):
            extract_archive(archive, tmp_path / "out", strip_components=1)

        assert not (tmp_path / "evil.txt").exists()

    def test_extract_corrupt_archive(self, tmp_path):
        archive = tmp_path / "broken.tar.gz"
        archive.write_bytes(b"not an archive")

        with pytest.raises(ArchiveExtractionError, match="Failed to extract"):
            extract_archive(archive, tmp_path / "out")


class TestFileOperations:
    """Test safe file operations."""

    def test_atomic_write_text(self, tmp_path):
        target = tmp_path / "nested" / "file.txt"

        atomic_write(target, "content")

        assert target.read_text() == "content"
        assert list(target.parent.glob("*.tmp")) == []

    def test_atomic_write_replaces(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("old")

        atomic_write(target, b"new")

        assert target.read_bytes() == b"new"

    def test_write_text_file_creates_parents(self, tmp_path):
        path = write_text_file(tmp_path, "a/b/c.txt", "deep")

        assert path == tmp_path / "a" / "b" / "c.txt"
        assert path.read_text() == "deep"

    def test_write_text_file_rejects_escape(self, tmp_path):
        with pytest.raises(InsecureArchiveError):
            write_text_file(tmp_path / "root", "../outside.txt", "nope")

    def test_clear_directory_keeps_directory(self, tmp_path):
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "f").write_text("x")
        (tmp_path / "g").write_text("y")

        clear_directory(tmp_path)

        assert tmp_path.exists()
        assert list(tmp_path.iterdir()) == []

    def test_safe_rmtree_missing_path(self, tmp_path):
        safe_rmtree(tmp_path / "missing")
