"""
Tests for the resolver protocol and registry.
"""

import pytest

from opamkit.lockfile.store import Lockfile
from opamkit.resolvers.base import ExoticResolver, ResolutionRequest, ResolverRegistry
from opamkit.resolvers.opam import OpamResolver


class TarballResolver(ExoticResolver):
    remote_type = "tarball"

    def is_applicable(self, pattern):
        return pattern.endswith(".tgz")

    def resolve(self, request):
        raise NotImplementedError

    def is_lock_entry_outdated(self, entry, version_range, toolchain_version=None):
        return False


class TestResolutionRequest:
    """Test ResolutionRequest."""

    def test_path_without_parents(self):
        assert ResolutionRequest("@opam/lwt").path == "@opam/lwt"

    def test_path_with_parents(self):
        request = ResolutionRequest("@opam/lwt", parent_names=["app", "@opam/cohttp"])

        assert request.path == "app > @opam/cohttp > @opam/lwt"

    def test_get_locked_without_entry(self):
        assert ResolutionRequest("@opam/lwt").get_locked("opam") is None

    def test_get_locked_without_resolved(self):
        lockfile = Lockfile(cache={"@opam/lwt@^4.0.0": {"version": "4.1.0"}})

        request = ResolutionRequest("@opam/lwt@^4.0.0", lockfile=lockfile)

        assert request.get_locked("opam") is None

    def test_get_locked_rebuilds_manifest(self):
        lockfile = Lockfile(
            cache={
                "@opam/lwt@^4.0.0": {
                    "version": "4.1.0",
                    "resolved": "@opam/lwt@4.1.0-4.1.0.tgz",
                    "dependencies": {"@opam/result": "*"},
                    "peerDependencies": {"ocaml": ">= 4.2.0"},
                    "permissions": {"postinstall": True},
                }
            }
        )

        manifest = ResolutionRequest("@opam/lwt@^4.0.0", lockfile=lockfile).get_locked("opam")

        assert manifest.name == "@opam/lwt"
        assert manifest.version == "4.1.0"
        assert manifest.uid == "4.1.0"
        assert manifest.dependencies == {"@opam/result": "*"}
        assert manifest.peer_dependencies == {"ocaml": ">= 4.2.0"}
        assert manifest.remote.type == "opam"
        assert manifest.remote.registry == "npm"
        assert manifest.remote.hash is None
        assert manifest.remote.reference == "@opam/lwt@4.1.0-4.1.0.tgz"
        assert manifest.reference.permissions == {"postinstall": True}

    def test_get_locked_splits_hash(self):
        lockfile = Lockfile(
            cache={"a@1": {"version": "1.0.0", "resolved": "https://example.com/a.tgz#abc"}}
        )

        manifest = ResolutionRequest("a@1", lockfile=lockfile).get_locked("tarball")

        assert manifest.remote.reference == "https://example.com/a.tgz"
        assert manifest.remote.hash == "abc"
        assert manifest.remote.resolved == "https://example.com/a.tgz#abc"

    def test_get_locked_file_type(self):
        lockfile = Lockfile(cache={"a@1": {"version": "1.0.0", "resolved": "file:../a"}})

        manifest = ResolutionRequest("a@1", lockfile=lockfile).get_locked("opam")

        assert manifest.remote.type == "file"


class TestResolverRegistry:
    """Test ResolverRegistry."""

    def test_find_first_applicable(self, catalog_factory):
        registry = ResolverRegistry()
        opam = OpamResolver(catalog_factory())
        tarball = TarballResolver()
        registry.register(opam)
        registry.register(tarball)

        assert registry.find("@opam/lwt@^4.0.0") is opam
        assert registry.find("https://example.com/a.tgz") is tarball
        assert registry.find("lwt@^4.0.0") is None

    def test_register_rejects_non_resolver(self):
        with pytest.raises(TypeError, match="ExoticResolver"):
            ResolverRegistry().register(object())

    def test_registered_list_is_a_copy(self):
        registry = ResolverRegistry()
        registry.register(TarballResolver())

        registry.get_registered_resolvers().clear()

        assert len(registry.get_registered_resolvers()) == 1

    def test_clear(self):
        registry = ResolverRegistry()
        registry.register(TarballResolver())

        registry.clear()

        assert registry.find("a.tgz") is None

    def test_abstract_methods_enforced(self):
        with pytest.raises(TypeError):
            ExoticResolver()
