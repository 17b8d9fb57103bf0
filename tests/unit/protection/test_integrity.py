"""Tests for FeatureIntegrityChecker."""

from unittest.mock import Mock

import pytest

from forksync.core.models import ConflictKind, ConflictRisk, RawConflict
from forksync.protection.integrity import FeatureIntegrityChecker

TREE = [
    ".claude/commands/countdown.md",
    "README.md",
    "package.json",
    "specs/auto-accept-countdown/countdown.ts",
    "specs/auto-accept-countdown/design.md",
]


@pytest.fixture
def gateway():
    gateway = Mock()
    gateway.primary_branch = "main"
    gateway.tree_files.return_value = TREE
    gateway.count_matches.return_value = 2
    return gateway


def test_untouched_feature_is_low_risk(gateway, protected_paths):
    status = FeatureIntegrityChecker(gateway).validate(
        protected_paths, ["README.md"], tree_files=TREE
    )

    assert status.critical_files_intact
    assert status.dependencies_healthy
    assert status.risk_assessment == ConflictRisk.LOW
    assert status.fork_urls_valid
    assert status.fork_url_count == 2
    gateway.tree_files.assert_not_called()


def test_missing_critical_file_is_high(gateway, protected_paths):
    tree = [p for p in TREE if p != ".claude/commands/countdown.md"]

    status = FeatureIntegrityChecker(gateway).validate(
        protected_paths, [".claude/commands/countdown.md"], tree_files=tree
    )

    assert not status.critical_files_intact
    assert status.missing_files == [".claude/commands/countdown.md"]
    assert status.risk_assessment == ConflictRisk.HIGH


def test_protected_conflict_is_high_even_with_files_intact(
    gateway, protected_paths
):
    conflicts = [
        RawConflict(path="specs/auto-accept-countdown/design.md",
                    kind=ConflictKind.CONTENT),
        RawConflict(path="src/app.py", kind=ConflictKind.CONTENT),
    ]

    status = FeatureIntegrityChecker(gateway).validate(
        protected_paths,
        ["specs/auto-accept-countdown/design.md", "src/app.py"],
        tree_files=TREE,
        conflicts=conflicts,
    )

    assert status.critical_files_intact
    assert status.protected_conflicts == ["specs/auto-accept-countdown/design.md"]
    assert status.changed_protected_files == [
        "specs/auto-accept-countdown/design.md"
    ]
    assert status.risk_assessment == ConflictRisk.HIGH


def test_changed_dependency_is_medium(gateway, protected_paths):
    status = FeatureIntegrityChecker(gateway).validate(
        protected_paths, ["package.json", "README.md"], tree_files=TREE
    )

    assert not status.dependencies_healthy
    assert status.changed_dependencies == ["package.json"]
    assert status.risk_assessment == ConflictRisk.MEDIUM


def test_lists_tree_from_ref_when_not_given(gateway, protected_paths):
    checker = FeatureIntegrityChecker(gateway)

    checker.validate(protected_paths, [], ref="feature")

    gateway.tree_files.assert_called_once_with("feature")


def test_defaults_to_primary_branch(gateway, protected_paths):
    FeatureIntegrityChecker(gateway).validate(protected_paths, [])

    gateway.tree_files.assert_called_once_with("main")
    gateway.count_matches.assert_called_once_with(
        "main",
        "https://github.com/forkowner/timercc",
        ["specs/auto-accept-countdown", ".claude/commands/countdown.md"],
    )


def test_too_few_fork_urls_is_a_warning_only(gateway, protected_paths):
    gateway.count_matches.return_value = 0

    status = FeatureIntegrityChecker(gateway).validate(
        protected_paths, [], tree_files=TREE
    )

    assert not status.fork_urls_valid
    assert status.fork_url_count == 0
    assert status.risk_assessment == ConflictRisk.LOW


def test_protected_rename_or_delete_conflict_is_not_high(
    gateway, protected_paths
):
    conflicts = [
        RawConflict(path="specs/auto-accept-countdown/design.md",
                    kind=ConflictKind.RENAME),
        RawConflict(path=".claude/commands/countdown.md",
                    kind=ConflictKind.DELETE),
    ]

    status = FeatureIntegrityChecker(gateway).validate(
        protected_paths,
        ["specs/auto-accept-countdown/design.md"],
        tree_files=TREE,
        conflicts=conflicts,
    )

    assert status.protected_conflicts == [
        ".claude/commands/countdown.md",
        "specs/auto-accept-countdown/design.md",
    ]
    assert status.risk_assessment == ConflictRisk.LOW
