"""Trial merge and conflict tagging."""

from __future__ import annotations

from forksync.core.log import logger
from forksync.core.models import (
    Conflict,
    ConflictKind,
    ConflictRisk,
    MergeSimulationResult,
    RawConflict,
    SimulationRisk,
    UpstreamRef,
)
from forksync.protection.registry import ProtectedPathSet

# Severity of a conflict outside the protected area, by kind
_KIND_SEVERITY = {
    ConflictKind.BINARY: ConflictRisk.HIGH,
    ConflictKind.CONTENT: ConflictRisk.MEDIUM,
    ConflictKind.DELETE: ConflictRisk.MEDIUM,
    ConflictKind.RENAME: ConflictRisk.LOW,
}


def classify_conflict(
    raw: RawConflict, protected_paths: ProtectedPathSet
) -> Conflict:
    """Tag one raw conflict with its severity.

    A protected path is always HIGH, whatever its kind.
    """
    protected = protected_paths.is_protected(raw.path)
    severity = ConflictRisk.HIGH if protected else _KIND_SEVERITY[raw.kind]
    return Conflict(
        path=raw.path,
        kind=raw.kind,
        severity=severity,
        protected=protected,
    )


def aggregate_risk(
    conflicts: list[Conflict], structural_failure: str | None = None
) -> SimulationRisk:
    """Aggregate conflict severities into a simulation risk.

    MANUAL means git cannot produce a reviewable merge: it refused to
    merge at all, or a conflict is HIGH by its own kind (binary). A
    conflict that is HIGH only because its path is protected still
    yields a reviewable diff, so it counts as REVIEW.
    """
    if structural_failure:
        return SimulationRisk.MANUAL
    if not conflicts:
        return SimulationRisk.SAFE
    if any(_KIND_SEVERITY[c.kind] == ConflictRisk.HIGH for c in conflicts):
        return SimulationRisk.MANUAL
    return SimulationRisk.REVIEW


class MergeSimulator:
    """Run a trial merge through the gateway and grade the result."""

    def __init__(self, gateway):
        self.gateway = gateway

    def simulate(
        self,
        base: str,
        upstream: UpstreamRef,
        protected_paths: ProtectedPathSet,
    ) -> MergeSimulationResult:
        """Trial-merge ``upstream`` into ``base`` without touching it.

        The gateway owns the disposable worktree and removes it before
        returning or raising; this call leaves the primary branch tip
        unchanged on every path.
        """
        with logger.span("Simulating merge", base=base, upstream=upstream.name):
            trial = self.gateway.trial_merge(base, upstream)

        conflicts = [classify_conflict(c, protected_paths) for c in trial.conflicts]
        risk = aggregate_risk(conflicts, trial.structural_failure)

        result = MergeSimulationResult(
            success=trial.success and not conflicts,
            conflicts=conflicts,
            affected_files=trial.affected_files,
            risk_level=risk,
            structural_failure=trial.structural_failure,
            tree_files=trial.tree_files,
        )
        logger.info(
            "Merge simulation complete",
            success=result.success,
            conflicts=len(conflicts),
            protected_conflicts=sum(c.protected for c in conflicts),
            risk=risk.value,
        )
        return result
