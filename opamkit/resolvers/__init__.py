"""
Exotic resolvers.

Example:
    >>> from opamkit.resolvers import OpamResolver, ResolverRegistry
    >>> registry = ResolverRegistry()
    >>> registry.register(OpamResolver(catalog))
    >>> registry.find('@opam/lwt@^4.0.0')
"""

from opamkit.resolvers.base import (
    ExoticResolver,
    ResolutionRequest,
    ResolverRegistry,
)
from opamkit.resolvers.opam import (
    OpamResolver,
    PackageReference,
    Solution,
    SolutionType,
    format_reference,
    is_valid_reference,
    is_version,
    lookup_manifest,
    parse_fragment,
    parse_reference,
    solve_version_constraint,
)
from opamkit.resolvers.versions import opam_version_compare, sort_versions_descending

__all__ = [
    "ExoticResolver",
    "ResolutionRequest",
    "ResolverRegistry",
    "OpamResolver",
    "PackageReference",
    "Solution",
    "SolutionType",
    "format_reference",
    "is_valid_reference",
    "is_version",
    "lookup_manifest",
    "parse_fragment",
    "parse_reference",
    "solve_version_constraint",
    "opam_version_compare",
    "sort_versions_descending",
]
