"""Routing decision for one sync run."""

from __future__ import annotations

from forksync.core.models import (
    ConflictAnalysis,
    ConflictRisk,
    DivergenceStatus,
    FeatureStatus,
    MergeDecision,
    MergeSimulationResult,
    SimulationRisk,
)


def decide(
    divergence: DivergenceStatus,
    feature_status: FeatureStatus,
    simulation: MergeSimulationResult,
    analysis: ConflictAnalysis,
) -> MergeDecision:
    """Map stage results to a MergeDecision; first matching row wins.

    ===============================================  ==========================
    condition                                        decision
    ===============================================  ==========================
    simulation MANUAL or critical files missing      MANUAL_REQUIRED
    any conflict                                     CREATE_REVIEW_PR
    dependencies changed, no conflicts               AUTO_MERGE_WITH_VALIDATION
    simulation SAFE and feature risk LOW             AUTO_MERGE
    otherwise                                        CREATE_REVIEW_PR
    ===============================================  ==========================

    ``divergence`` and ``analysis`` are accepted so every stage result
    flows through one call, but no row reads them.
    """
    del divergence, analysis

    if (
        simulation.risk_level == SimulationRisk.MANUAL
        or not feature_status.critical_files_intact
    ):
        return MergeDecision.MANUAL_REQUIRED
    if simulation.conflicts:
        return MergeDecision.CREATE_REVIEW_PR
    if not feature_status.dependencies_healthy:
        return MergeDecision.AUTO_MERGE_WITH_VALIDATION
    if (
        simulation.risk_level == SimulationRisk.SAFE
        and feature_status.risk_assessment == ConflictRisk.LOW
    ):
        return MergeDecision.AUTO_MERGE
    return MergeDecision.CREATE_REVIEW_PR


class DecisionEngine:
    """Object seam around decide() for callers that inject collaborators."""

    def decide(
        self,
        divergence: DivergenceStatus,
        feature_status: FeatureStatus,
        simulation: MergeSimulationResult,
        analysis: ConflictAnalysis,
    ) -> MergeDecision:
        return decide(divergence, feature_status, simulation, analysis)
