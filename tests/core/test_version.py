"""
Unit tests for the version and selector model.
"""

import random

import pytest

from swiftvm.core.exceptions import (
    IncomparableVersionsError,
    InvalidSelectorSyntax,
    InvalidVersionError,
    NoMatchingVersion,
)
from swiftvm.core.version import (
    Exact,
    Latest,
    LatestMainSnapshot,
    LatestMinor,
    LatestPatch,
    LatestReleaseSnapshot,
    Snapshot,
    SnapshotBranch,
    StableRelease,
    ToolchainVersion,
    parse_selector,
    resolve,
)

CATALOG = [
    ToolchainVersion.parse(name)
    for name in [
        "5.8.1",
        "5.9.0",
        "5.9.2",
        "5.10.0",
        "5.10.1",
        "6.0.0",
        "main-snapshot-2024-05-01",
        "main-snapshot-2024-06-01",
        "5.10-snapshot-2024-03-01",
        "5.10-snapshot-2024-04-15",
        "6.0-snapshot-2024-06-10",
    ]
]


class TestToolchainVersionParsing:
    """Test parsing canonical version names and download identifiers."""

    def test_parse_stable(self):
        """Test a.b.c parses to a stable release."""
        assert ToolchainVersion.parse("5.10.1") == StableRelease(5, 10, 1)

    def test_parse_main_snapshot(self):
        """Test main snapshot names."""
        version = ToolchainVersion.parse("main-snapshot-2024-06-01")
        assert version == Snapshot(SnapshotBranch(), "2024-06-01")
        assert version.branch.is_main

    def test_parse_release_snapshot(self):
        """Test release branch snapshot names."""
        version = ToolchainVersion.parse("5.10-snapshot-2024-03-01")
        assert version == Snapshot(SnapshotBranch(5, 10), "2024-03-01")

    @pytest.mark.parametrize(
        "text", ["", "5", "5.10", "5.10.1.2", "latest", "main-snapshot", "v5.10.1"]
    )
    def test_parse_rejects_non_canonical(self, text):
        """Test that selectors and junk are not versions."""
        with pytest.raises(InvalidVersionError):
            ToolchainVersion.parse(text)

    def test_name_round_trips(self):
        """Test parse(version.name) gives the same version."""
        for version in CATALOG:
            assert ToolchainVersion.parse(version.name) == version

    def test_stable_identifier_drops_zero_patch(self):
        """Test x.y.0 releases use the x.y tag on swift.org."""
        assert StableRelease(5, 10, 0).identifier == "swift-5.10-RELEASE"
        assert StableRelease(5, 10, 1).identifier == "swift-5.10.1-RELEASE"

    def test_snapshot_identifiers(self):
        """Test snapshot download identifiers."""
        main = Snapshot(SnapshotBranch(), "2024-06-01")
        branch = Snapshot(SnapshotBranch(6, 0), "2024-06-10")
        assert main.identifier == "swift-DEVELOPMENT-SNAPSHOT-2024-06-01-a"
        assert branch.identifier == "swift-6.0-DEVELOPMENT-SNAPSHOT-2024-06-10-a"

    def test_from_identifier(self):
        """Test identifiers map back to versions."""
        assert ToolchainVersion.from_identifier("swift-5.10-RELEASE") == StableRelease(
            5, 10, 0
        )
        assert ToolchainVersion.from_identifier(
            "swift-6.0-DEVELOPMENT-SNAPSHOT-2024-06-10-a"
        ) == Snapshot(SnapshotBranch(6, 0), "2024-06-10")

    def test_from_identifier_rejects_unknown(self):
        """Test unknown identifiers raise."""
        with pytest.raises(InvalidVersionError):
            ToolchainVersion.from_identifier("swift-5.10-BETA")


class TestOrdering:
    """Test ordering within and across version kinds."""

    def test_stable_ordering(self):
        """Test stable releases compare numerically."""
        assert StableRelease(5, 9, 2) < StableRelease(5, 10, 0)
        assert StableRelease(5, 10, 1) > StableRelease(5, 10, 0)
        assert StableRelease(6, 0, 0) >= StableRelease(6, 0, 0)

    def test_snapshot_ordering_same_branch(self):
        """Test snapshots on one branch compare by date."""
        older = ToolchainVersion.parse("main-snapshot-2024-05-01")
        newer = ToolchainVersion.parse("main-snapshot-2024-06-01")
        assert older < newer

    def test_cross_branch_comparison_raises(self):
        """Test snapshots from different branches are incomparable."""
        main = ToolchainVersion.parse("main-snapshot-2024-05-01")
        branch = ToolchainVersion.parse("5.10-snapshot-2024-05-01")
        with pytest.raises(IncomparableVersionsError):
            main < branch

    def test_stable_vs_snapshot_raises(self):
        """Test stable releases and snapshots are incomparable."""
        with pytest.raises(IncomparableVersionsError):
            StableRelease(5, 10, 0) < ToolchainVersion.parse("main-snapshot-2024-05-01")

    def test_incomparable_is_type_error(self):
        """Test sorted() on mixed kinds fails with a TypeError."""
        with pytest.raises(TypeError):
            sorted(CATALOG)

    def test_sort_key_is_total(self):
        """Test display ordering works on mixed kinds."""
        ordered = sorted(CATALOG, key=lambda v: v.sort_key())
        assert ordered[0] == StableRelease(5, 8, 1)
        assert ordered[-1] == ToolchainVersion.parse("main-snapshot-2024-06-01")


class TestParseSelector:
    """Test selector syntax."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("latest", Latest()),
            ("5", LatestMinor(5)),
            ("5.10", LatestPatch(5, 10)),
            ("5.10.1", Exact(StableRelease(5, 10, 1))),
            ("main-snapshot", LatestMainSnapshot()),
            ("5.10-snapshot", LatestReleaseSnapshot(5, 10)),
            (
                "main-snapshot-2024-06-01",
                Exact(Snapshot(SnapshotBranch(), "2024-06-01")),
            ),
            (
                "5.10-snapshot-2024-03-01",
                Exact(Snapshot(SnapshotBranch(5, 10), "2024-03-01")),
            ),
            (
                "swift-DEVELOPMENT-SNAPSHOT-2024-06-01-a",
                Exact(Snapshot(SnapshotBranch(), "2024-06-01")),
            ),
            (
                "5.10-DEVELOPMENT-SNAPSHOT-2024-03-01-a",
                Exact(Snapshot(SnapshotBranch(5, 10), "2024-03-01")),
            ),
            ("  5.10  ", LatestPatch(5, 10)),
        ],
    )
    def test_valid_selectors(self, text, expected):
        """Test every accepted selector form."""
        assert parse_selector(text) == expected

    @pytest.mark.parametrize(
        "text", ["", "newest", "5.x", "5.10-snapshot-2024", "snapshot", "5.10.1-beta"]
    )
    def test_invalid_selectors(self, text):
        """Test malformed selectors raise InvalidSelectorSyntax."""
        with pytest.raises(InvalidSelectorSyntax) as exc_info:
            parse_selector(text)
        assert exc_info.value.hint
        assert exc_info.value.exit_code == 2

    def test_snapshot_branch(self):
        """Test which selectors target a snapshot branch."""
        assert parse_selector("5.10").snapshot_branch() is None
        assert parse_selector("main-snapshot").snapshot_branch() == SnapshotBranch()
        assert parse_selector("5.10-snapshot-2024-03-01").snapshot_branch() == (
            SnapshotBranch(5, 10)
        )
        assert parse_selector("5.10.1").is_snapshot_selector() is False


class TestResolve:
    """Test selector resolution against a catalog."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("latest", "6.0.0"),
            ("5", "5.10.1"),
            ("5.9", "5.9.2"),
            ("5.10.0", "5.10.0"),
            ("main-snapshot", "main-snapshot-2024-06-01"),
            ("5.10-snapshot", "5.10-snapshot-2024-04-15"),
            ("6.0-snapshot", "6.0-snapshot-2024-06-10"),
        ],
    )
    def test_resolves_newest_match(self, text, expected):
        """Test each selector picks the newest matching version."""
        assert resolve(parse_selector(text), CATALOG).name == expected

    def test_latest_ignores_snapshots(self):
        """Test 'latest' never resolves to a snapshot."""
        snapshots_only = [v for v in CATALOG if v.is_snapshot()]
        with pytest.raises(NoMatchingVersion):
            resolve(Latest(), snapshots_only)

    def test_no_match(self):
        """Test an unmatched selector raises NoMatchingVersion."""
        with pytest.raises(NoMatchingVersion, match="4.2"):
            resolve(parse_selector("4.2"), CATALOG)

    def test_exact_requires_presence(self):
        """Test exact selectors only match listed versions."""
        with pytest.raises(NoMatchingVersion):
            resolve(parse_selector("5.10.7"), CATALOG)

    def test_resolution_is_deterministic(self):
        """Test results do not depend on catalog order."""
        rng = random.Random(1234)
        selectors = ["latest", "5", "5.9", "5.10", "main-snapshot", "5.10-snapshot"]
        expected = {text: resolve(parse_selector(text), CATALOG) for text in selectors}

        for _ in range(25):
            shuffled = list(CATALOG)
            rng.shuffle(shuffled)
            for text in selectors:
                assert resolve(parse_selector(text), shuffled) == expected[text]
