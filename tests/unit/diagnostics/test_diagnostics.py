"""
Tests for DiagnosticsService and its pure helpers.
"""

import pytest

from assetmigrator.diagnostics import (
    DiagnosticsService,
    compare_listings,
    matches_pattern,
    similar_paths,
)
from assetmigrator.host.interfaces import StaticFilesystemResolver
from assetmigrator.storage.backends.memory import InMemoryStorageProvider
from assetmigrator.storage.core.health import ConnectionTestResult
from assetmigrator.storage.interfaces.provider import StorageObject


class DownProvider(InMemoryStorageProvider):
    async def test_connection(self):
        return ConnectionTestResult.failure("Access denied")


@pytest.fixture
def diagnostics():
    old = InMemoryStorageProvider(
        "images",
        objects={
            "2024/05/photo-001.jpg": b"aaaa",
            "2024/05/photo-002.jpg": b"bbbb",
            "2024/05/Logo.PNG": b"png",
            "2024/06/banner.jpg": b"banner",
            "readme.txt": b"hi",
        },
    )
    new = InMemoryStorageProvider(
        "images_do",
        objects={
            "2024/05/photo-001.jpg": b"aaaa",
            "2024/05/photo-002.jpg": b"bb",
            "2024/07/extra.jpg": b"x",
        },
    )
    return DiagnosticsService(
        StaticFilesystemResolver({"images": old, "images_do": new, "down": DownProvider("down")})
    )


class TestHelpers:
    def test_similar_paths_ranked(self):
        candidates = ["2024/photo-01.jpg", "2024/photo-002.jpg", "2024/banner.jpg"]
        ranked = similar_paths("2024/photo-001.jpg", candidates)
        assert [path for path, _ in ranked] == ["2024/photo-01.jpg", "2024/photo-002.jpg"]
        assert ranked[0][1] > ranked[1][1] >= 0.7

    def test_similar_paths_excludes_self_and_limits(self):
        candidates = [f"a/photo-00{i}.jpg" for i in range(10)]
        ranked = similar_paths("a/photo-001.jpg", candidates, limit=3)
        assert len(ranked) == 3
        assert "a/photo-001.jpg" not in [path for path, _ in ranked]

    def test_similar_paths_case_insensitive(self):
        assert similar_paths("x/LOGO.png", ["x/logo.png"]) == [("x/logo.png", 1.0)]

    def test_similar_paths_threshold(self):
        assert similar_paths("a/photo.jpg", ["a/zzz.bin"], threshold=0.7) == []

    @pytest.mark.parametrize(
        ("path", "pattern", "expected"),
        [
            ("2024/05/Logo.PNG", "logo", True),
            ("2024/05/Logo.PNG", "*.png", True),
            ("2024/05/photo-001.jpg", "photo-00?.jpg", True),
            ("2024/05/photo-001.jpg", "2024/05/*", True),
            ("2024/05/photo-001.jpg", "*.png", False),
            ("2024/05/photo-001.jpg", "banner", False),
        ],
    )
    def test_matches_pattern(self, path, pattern, expected):
        assert matches_pattern(path, pattern) is expected

    def test_compare_listings(self):
        a = [StorageObject("x", 1), StorageObject("y", 2), StorageObject("z", 3)]
        b = [StorageObject("y", 2), StorageObject("z", 4), StorageObject("w", 1)]

        report = compare_listings(a, b, "old", "new")

        assert report.only_in_a == ["x"]
        assert report.only_in_b == ["w"]
        assert report.size_mismatches == {"z": (3, 4)}
        assert report.in_both == 2
        assert not report.identical

    def test_compare_identical(self):
        listing = [StorageObject("x", 1)]
        assert compare_listings(listing, listing).identical


@pytest.mark.asyncio
class TestDiagnosticsService:
    """Service operations over in-memory providers."""

    async def test_unknown_handle(self, diagnostics):
        with pytest.raises(LookupError, match="avatars"):
            await diagnostics.list_objects("avatars")

    async def test_list_objects(self, diagnostics):
        objects = await diagnostics.list_objects("images", prefix="2024/05/")
        assert [o.path for o in objects] == [
            "2024/05/Logo.PNG",
            "2024/05/photo-001.jpg",
            "2024/05/photo-002.jpg",
        ]

    async def test_list_non_recursive_with_limit(self, diagnostics):
        assert [o.path for o in await diagnostics.list_objects("images", recursive=False)] == [
            "readme.txt"
        ]
        assert len(await diagnostics.list_objects("images", limit=2)) == 2

    async def test_search_substring(self, diagnostics):
        found = await diagnostics.search("images", "PHOTO")
        assert [o.path for o in found] == ["2024/05/photo-001.jpg", "2024/05/photo-002.jpg"]

    async def test_search_glob_and_limit(self, diagnostics):
        assert [o.path for o in await diagnostics.search("images", "*.png")] == ["2024/05/Logo.PNG"]
        assert len(await diagnostics.search("images", "*.jpg", limit=1)) == 1

    async def test_verify_existing(self, diagnostics):
        check = await diagnostics.verify_object("images", "/2024/05/photo-001.jpg")

        assert check.exists
        assert check.path == "2024/05/photo-001.jpg"
        assert check.object.size == 4
        assert check.public_url == "memory://images/2024/05/photo-001.jpg"

    async def test_verify_missing_suggests_same_directory(self, diagnostics):
        check = await diagnostics.verify_object("images", "2024/05/photo-01.jpg")

        assert not check.exists
        assert [path for path, _ in check.suggestions] == [
            "2024/05/photo-001.jpg",
            "2024/05/photo-002.jpg",
        ]
        assert check.to_dict()["suggestions"][0]["path"] == "2024/05/photo-001.jpg"

    async def test_verify_missing_no_suggestions(self, diagnostics):
        check = await diagnostics.verify_object("images", "2024/05/zzz.bin")
        assert not check.exists
        assert check.suggestions == []

    async def test_compare(self, diagnostics):
        report = await diagnostics.compare("images", "images_do")

        assert report.only_in_a == ["2024/05/Logo.PNG", "2024/06/banner.jpg", "readme.txt"]
        assert report.only_in_b == ["2024/07/extra.jpg"]
        assert report.size_mismatches == {"2024/05/photo-002.jpg": (4, 2)}
        assert report.in_both == 2
        assert report.to_dict()["size_mismatches"]["2024/05/photo-002.jpg"] == {"a": 4, "b": 2}

    async def test_compare_with_prefix(self, diagnostics):
        report = await diagnostics.compare("images", "images_do", prefix="2024/06/")
        assert report.only_in_a == ["2024/06/banner.jpg"]
        assert report.only_in_b == []

    async def test_connectivity_continues_past_failures(self, diagnostics):
        results = await diagnostics.test_connectivity()

        assert sorted(results) == ["down", "images", "images_do"]
        assert results["images"].success
        assert not results["down"].success

    async def test_connectivity_unknown_handle(self, diagnostics):
        results = await diagnostics.test_connectivity(["images", "avatars"])
        assert not results["avatars"].success
        assert "does not resolve" in results["avatars"].message

    async def test_never_writes(self, diagnostics):
        provider = diagnostics.provider("images")
        before = provider.paths()

        await diagnostics.verify_object("images", "missing.jpg")
        await diagnostics.compare("images", "images_do")
        await diagnostics.search("images", "*")

        assert provider.paths() == before
