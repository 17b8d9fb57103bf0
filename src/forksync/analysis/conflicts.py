"""Conflict classification into an overall risk."""

from __future__ import annotations

from forksync.analysis.simulator import aggregate_risk
from forksync.core.models import (
    Conflict,
    ConflictAnalysis,
    ConflictRisk,
    FeatureStatus,
    FileNote,
    SimulationRisk,
)


class ConflictAnalyzer:
    """Combine conflict severities with the feature risk assessment.

    Pure: the same conflicts and feature status always produce an
    equal ConflictAnalysis. Nothing here attempts a resolution.
    """

    def analyze(
        self,
        conflicts: list[Conflict],
        feature_status: FeatureStatus,
        simulation_risk: SimulationRisk | None = None,
    ) -> ConflictAnalysis:
        """Classify the conflicts of one simulation.

        Args:
            conflicts: Tagged conflicts from the trial merge
            feature_status: Integrity verdict for the same change set
            simulation_risk: Aggregate simulation risk; derived from
                the conflicts when omitted

        Returns:
            ConflictAnalysis whose overall risk is the maximum of the
            simulation risk, the feature risk, and every conflict
            severity
        """
        notes = [
            FileNote(
                path=c.path, kind=c.kind, severity=c.severity,
                protected=c.protected,
            )
            for c in sorted(conflicts, key=lambda c: c.path)
        ]
        risks = [feature_status.risk_assessment]
        risks.extend(c.severity for c in conflicts)
        if simulation_risk is None:
            simulation_risk = aggregate_risk(conflicts)
        risks.append(simulation_risk.as_conflict_risk())
        overall = ConflictRisk.highest(*risks)

        return ConflictAnalysis(
            overall_risk=overall,
            recommendation=self._recommend(overall, notes, feature_status),
            per_file_notes=notes,
        )

    @staticmethod
    def _recommend(
        overall: ConflictRisk,
        notes: list[FileNote],
        feature_status: FeatureStatus,
    ) -> str:
        if not feature_status.critical_files_intact:
            missing = ", ".join(feature_status.missing_files) or "unknown"
            return f"Critical feature files missing after merge: {missing}"
        protected = [n.path for n in notes if n.protected]
        if protected:
            return (
                f"{len(protected)} protected path(s) conflict with upstream; "
                "review before merging"
            )
        if notes:
            return f"{len(notes)} conflicting file(s) need manual resolution"
        if overall == ConflictRisk.LOW:
            return "No conflicts; upstream changes can merge cleanly"
        return "No conflicts; re-validate the feature after merging"
