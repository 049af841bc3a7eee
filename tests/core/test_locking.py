"""
Unit tests for the locking module.
"""

import threading
import time
from unittest.mock import patch

import pytest
from filelock import Timeout as LockTimeout

from opamkit.core.locking import LockManager, get_global_cache_dir


class TestLockManager:
    """Tests for LockManager class."""

    def test_init_default_lock_dir(self, tmp_path):
        with patch("opamkit.core.locking.get_global_cache_dir", return_value=tmp_path):
            manager = LockManager()

            assert manager.lock_dir == tmp_path / "lock"
            assert (tmp_path / "lock").exists()

    def test_init_custom_lock_dir(self, tmp_path):
        custom_dir = tmp_path / "custom_locks"
        manager = LockManager(lock_dir=custom_dir)

        assert manager.lock_dir == custom_dir
        assert custom_dir.exists()

    def test_lock_path_is_stable_per_destination(self, tmp_path):
        manager = LockManager(lock_dir=tmp_path / "locks")

        first = manager.lock_path_for(tmp_path / "pkg")
        second = manager.lock_path_for(tmp_path / "pkg")
        other = manager.lock_path_for(tmp_path / "other")

        assert first == second
        assert first != other
        assert first.parent == tmp_path / "locks"

    def test_destination_lock_acquire_and_release(self, tmp_path):
        manager = LockManager(lock_dir=tmp_path / "locks")
        dest = tmp_path / "pkg"

        with manager.destination_lock(dest, timeout=5):
            pass

        # Released locks can be acquired again
        with manager.destination_lock(dest, timeout=1):
            pass

    def test_destination_lock_timeout(self, tmp_path):
        manager = LockManager(lock_dir=tmp_path / "locks")
        dest = tmp_path / "pkg"
        acquired = threading.Event()
        release = threading.Event()

        def hold():
            with manager.destination_lock(dest, timeout=5):
                acquired.set()
                release.wait(5)

        holder = threading.Thread(target=hold)
        holder.start()
        try:
            assert acquired.wait(5)
            with pytest.raises(LockTimeout):
                with manager.destination_lock(dest, timeout=0.1):
                    pass
        finally:
            release.set()
            holder.join()

    def test_different_destinations_do_not_block(self, tmp_path):
        manager = LockManager(lock_dir=tmp_path / "locks")

        start = time.time()
        with manager.destination_lock(tmp_path / "a", timeout=1):
            with manager.destination_lock(tmp_path / "b", timeout=1):
                pass

        assert time.time() - start < 1


def test_global_cache_dir_under_home():
    assert get_global_cache_dir().name == ".opamkit"
