"""
Diagnostics - read-only inspection of configured providers.

Everything here is built from provider listings and head requests; no
state is persisted and nothing is ever written to a provider.

Usage:
    >>> diagnostics = DiagnosticsService(ConfigFilesystemResolver(config))
    >>> check = await diagnostics.verify_object("images_do", "2024/05/photo.jpg")
    >>> if not check.exists:
    ...     print(check.suggestions)
    >>> report = await diagnostics.compare("images", "images_do")
"""

import asyncio
import difflib
import fnmatch
import posixpath
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from assetmigrator.core.logger import get_logger
from assetmigrator.host.interfaces import FilesystemResolver
from assetmigrator.storage.core.health import ConnectionTestResult, probe_connection
from assetmigrator.storage.interfaces.provider import (
    StorageObject,
    StorageProvider,
    normalize_path,
)

logger = get_logger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.7
DEFAULT_MAX_SUGGESTIONS = 5
GLOB_CHARACTERS = "*?["


# =============================================================================
# Pure helpers
# =============================================================================


def similar_paths(
    path: str,
    candidates: Iterable[str],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    limit: int = DEFAULT_MAX_SUGGESTIONS,
) -> list[tuple[str, float]]:
    """
    Rank candidate paths by basename similarity to path.

    Returns (candidate, ratio) pairs with ratio >= threshold, best first.
    Ties are broken by candidate path so the ranking is stable.
    """
    name = posixpath.basename(path).lower()
    scored = []
    for candidate in candidates:
        if candidate == path:
            continue
        ratio = difflib.SequenceMatcher(
            None, name, posixpath.basename(candidate).lower()
        ).ratio()
        if ratio >= threshold:
            scored.append((candidate, round(ratio, 3)))
    scored.sort(key=lambda item: (-item[1], item[0]))
    return scored[:limit]


def matches_pattern(path: str, pattern: str) -> bool:
    """Glob match when the pattern has glob characters, substring match otherwise."""
    path, pattern = path.lower(), pattern.lower()
    if any(char in pattern for char in GLOB_CHARACTERS):
        return fnmatch.fnmatchcase(path, pattern) or fnmatch.fnmatchcase(
            posixpath.basename(path), pattern
        )
    return pattern in path


@dataclass
class ComparisonReport:
    """
    Set difference between two listings, keyed by path.

    Attributes:
        only_in_a: Paths present only in the first listing
        only_in_b: Paths present only in the second listing
        size_mismatches: path -> (size in a, size in b)
        in_both: Number of paths present in both listings
    """

    handle_a: str = "a"
    handle_b: str = "b"
    only_in_a: list[str] = field(default_factory=list)
    only_in_b: list[str] = field(default_factory=list)
    size_mismatches: dict[str, tuple[int, int]] = field(default_factory=dict)
    in_both: int = 0

    @property
    def identical(self) -> bool:
        return not (self.only_in_a or self.only_in_b or self.size_mismatches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle_a": self.handle_a,
            "handle_b": self.handle_b,
            "only_in_a": self.only_in_a,
            "only_in_b": self.only_in_b,
            "size_mismatches": {
                path: {"a": a, "b": b} for path, (a, b) in self.size_mismatches.items()
            },
            "in_both": self.in_both,
            "identical": self.identical,
        }


def compare_listings(
    listing_a: Iterable[StorageObject],
    listing_b: Iterable[StorageObject],
    handle_a: str = "a",
    handle_b: str = "b",
) -> ComparisonReport:
    """Compare two object listings by path, then by size for shared paths."""
    sizes_a = {obj.path: obj.size for obj in listing_a}
    sizes_b = {obj.path: obj.size for obj in listing_b}

    shared = sizes_a.keys() & sizes_b.keys()
    return ComparisonReport(
        handle_a=handle_a,
        handle_b=handle_b,
        only_in_a=sorted(sizes_a.keys() - sizes_b.keys()),
        only_in_b=sorted(sizes_b.keys() - sizes_a.keys()),
        size_mismatches={
            path: (sizes_a[path], sizes_b[path])
            for path in sorted(shared)
            if sizes_a[path] != sizes_b[path]
        },
        in_both=len(shared),
    )


# =============================================================================
# Results
# =============================================================================


@dataclass
class ObjectCheck:
    """Existence check for one path, with suggestions when it is missing."""

    handle: str
    path: str
    exists: bool
    object: StorageObject | None = None
    public_url: str | None = None
    suggestions: list[tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "path": self.path,
            "exists": self.exists,
            "object": self.object.to_dict() if self.object else None,
            "public_url": self.public_url,
            "suggestions": [{"path": p, "similarity": r} for p, r in self.suggestions],
        }


# =============================================================================
# Service
# =============================================================================


class DiagnosticsService:
    """Read-only provider diagnostics over filesystem handles."""

    def __init__(self, resolver: FilesystemResolver):
        self.resolver = resolver

    def provider(self, handle: str) -> StorageProvider:
        """
        Raises:
            LookupError: The handle does not resolve
        """
        provider = self.resolver.resolve(handle)
        if provider is None:
            msg = f"Filesystem handle '{handle}' does not resolve to a provider"
            raise LookupError(msg)
        return provider

    async def list_objects(
        self,
        handle: str,
        prefix: str = "",
        recursive: bool = True,
        limit: int | None = None,
    ) -> list[StorageObject]:
        provider = self.provider(handle)
        return [obj async for obj in provider.list_objects(prefix, max_keys=limit, recursive=recursive)]

    async def search(
        self,
        handle: str,
        pattern: str,
        prefix: str = "",
        limit: int | None = None,
    ) -> list[StorageObject]:
        """Case-insensitive substring search, or glob when pattern contains * ? [."""
        found: list[StorageObject] = []
        async for obj in self.provider(handle).list_objects(prefix):
            if matches_pattern(obj.path, pattern):
                found.append(obj)
                if limit is not None and len(found) >= limit:
                    break
        return found

    async def verify_object(
        self,
        handle: str,
        path: str,
        suggestion_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
    ) -> ObjectCheck:
        """
        Check one path exists. On a miss, suggest similarly named objects
        from the same directory.
        """
        provider = self.provider(handle)
        path = normalize_path(path)
        obj = await provider.head_object(path)

        if obj is not None:
            return ObjectCheck(
                handle=handle,
                path=path,
                exists=True,
                object=obj,
                public_url=provider.public_url(path),
            )

        directory = posixpath.dirname(path)
        prefix = f"{directory}/" if directory else ""
        candidates = [
            candidate.path
            async for candidate in provider.list_objects(prefix, recursive=False)
        ]
        suggestions = similar_paths(path, candidates, suggestion_threshold, max_suggestions)
        logger.debug(f"{handle}:{path} not found, {len(suggestions)} suggestions")
        return ObjectCheck(handle=handle, path=path, exists=False, suggestions=suggestions)

    async def compare(self, handle_a: str, handle_b: str, prefix: str = "") -> ComparisonReport:
        listing_a, listing_b = await asyncio.gather(
            self.list_objects(handle_a, prefix),
            self.list_objects(handle_b, prefix),
        )
        report = compare_listings(listing_a, listing_b, handle_a, handle_b)
        logger.info(
            f"Compared {handle_a} and {handle_b}: {len(report.only_in_a)} only in {handle_a}, "
            f"{len(report.only_in_b)} only in {handle_b}, "
            f"{len(report.size_mismatches)} size mismatches"
        )
        return report

    async def test_connectivity(
        self,
        handles: Iterable[str] | None = None,
        timeout_seconds: float = 10.0,
    ) -> dict[str, ConnectionTestResult]:
        """One result per handle; a failing provider never stops the others."""
        handles = sorted(handles) if handles is not None else self.resolver.list_handles()

        async def probe(handle: str) -> ConnectionTestResult:
            provider = self.resolver.resolve(handle)
            if provider is None:
                return ConnectionTestResult.failure(
                    f"Filesystem handle '{handle}' does not resolve to a provider",
                    details={"handle": handle},
                )
            return await probe_connection(provider, timeout_seconds)

        results = await asyncio.gather(*(probe(handle) for handle in handles))
        return dict(zip(handles, results, strict=True))
