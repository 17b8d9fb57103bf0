"""Tests for trial merge grading."""

from unittest.mock import Mock

import pytest

from forksync.analysis.simulator import (
    MergeSimulator,
    aggregate_risk,
    classify_conflict,
)
from forksync.core.models import (
    ConflictKind,
    ConflictRisk,
    RawConflict,
    SimulationRisk,
    TrialMergeResult,
    UpstreamRef,
)

UPSTREAM = UpstreamRef(commit="a" * 40, branch="main")


def _simulate(protected_paths, trial):
    gateway = Mock()
    gateway.trial_merge.return_value = trial
    return MergeSimulator(gateway).simulate("main", UPSTREAM, protected_paths)


@pytest.mark.parametrize(
    ("kind", "severity"),
    [
        (ConflictKind.CONTENT, ConflictRisk.MEDIUM),
        (ConflictKind.DELETE, ConflictRisk.MEDIUM),
        (ConflictKind.RENAME, ConflictRisk.LOW),
        (ConflictKind.BINARY, ConflictRisk.HIGH),
    ],
)
def test_unprotected_severity_by_kind(protected_paths, kind, severity):
    conflict = classify_conflict(RawConflict(path="src/app.py", kind=kind),
                                 protected_paths)

    assert conflict.severity == severity
    assert not conflict.protected


@pytest.mark.parametrize("kind", list(ConflictKind))
def test_protected_path_is_always_high(protected_paths, kind):
    conflict = classify_conflict(
        RawConflict(path="specs/auto-accept-countdown/design.md", kind=kind),
        protected_paths,
    )

    assert conflict.severity == ConflictRisk.HIGH
    assert conflict.protected


def test_clean_trial_is_safe(protected_paths):
    result = _simulate(
        protected_paths,
        TrialMergeResult(
            success=True,
            affected_files=["docs/guide.md"],
            tree_files=["docs/guide.md", "README.md"],
        ),
    )

    assert result.success
    assert result.risk_level == SimulationRisk.SAFE
    assert result.conflicts == []
    assert result.affected_files == ["docs/guide.md"]
    assert result.tree_files == ["docs/guide.md", "README.md"]


def test_low_and_medium_conflicts_need_review(protected_paths):
    result = _simulate(
        protected_paths,
        TrialMergeResult(
            success=False,
            conflicts=[
                RawConflict(path="src/app.py", kind=ConflictKind.CONTENT),
                RawConflict(path="docs/old.md", kind=ConflictKind.RENAME),
            ],
        ),
    )

    assert not result.success
    assert result.risk_level == SimulationRisk.REVIEW


def test_protected_conflict_is_not_downgraded_by_others(protected_paths):
    result = _simulate(
        protected_paths,
        TrialMergeResult(
            success=False,
            conflicts=[
                RawConflict(path="docs/old.md", kind=ConflictKind.RENAME),
                RawConflict(
                    path="specs/auto-accept-countdown/design.md",
                    kind=ConflictKind.CONTENT,
                ),
            ],
        ),
    )

    severities = {c.path: c.severity for c in result.conflicts}
    assert severities["specs/auto-accept-countdown/design.md"] == ConflictRisk.HIGH
    assert severities["docs/old.md"] == ConflictRisk.LOW
    assert result.risk_level == SimulationRisk.REVIEW


def test_binary_conflict_needs_manual_merge(protected_paths):
    result = _simulate(
        protected_paths,
        TrialMergeResult(
            success=False,
            conflicts=[RawConflict(path="logo.png", kind=ConflictKind.BINARY)],
        ),
    )

    assert result.risk_level == SimulationRisk.MANUAL


def test_structural_failure_is_manual(protected_paths):
    result = _simulate(
        protected_paths,
        TrialMergeResult(
            success=False,
            structural_failure="refusing to merge unrelated histories",
        ),
    )

    assert not result.success
    assert result.risk_level == SimulationRisk.MANUAL
    assert result.structural_failure == "refusing to merge unrelated histories"


def test_aggregate_risk_without_conflicts():
    assert aggregate_risk([]) == SimulationRisk.SAFE
    assert aggregate_risk([], "boom") == SimulationRisk.MANUAL


def test_gateway_errors_propagate(protected_paths):
    gateway = Mock()
    gateway.trial_merge.side_effect = RuntimeError("git exploded")

    with pytest.raises(RuntimeError):
        MergeSimulator(gateway).simulate("main", UPSTREAM, protected_paths)


def test_tree_files_not_serialized(protected_paths):
    result = _simulate(
        protected_paths,
        TrialMergeResult(success=True, tree_files=["a.md"]),
    )

    assert "tree_files" not in result.model_dump()
