"""Status report assembly and export."""

from __future__ import annotations

import secrets
import string
import time
from datetime import UTC, datetime
from pathlib import Path

from forksync.core.log import logger
from forksync.core.models import (
    ConflictAnalysis,
    ConflictRisk,
    DivergenceStatus,
    FeatureIntegritySection,
    FeatureStatus,
    ForkStatusSection,
    MergeDecision,
    MergeOutcome,
    MergeSimulationResult,
    MergeSimulationSection,
    ReportSummary,
    StatusReport,
    UpstreamRef,
)

# Behind by more than this many commits needs attention
ACTION_BEHIND_THRESHOLD = 10
# Behind by more than this many commits suggests syncing more often
FAR_BEHIND_THRESHOLD = 20

_ID_ALPHABET = string.ascii_lowercase + string.digits

_DECISION_ADVICE = {
    MergeDecision.AUTO_MERGE:
        "Safe to auto-merge: no conflicts with protected features detected",
    MergeDecision.AUTO_MERGE_WITH_VALIDATION:
        "Auto-merge with post-merge validation: declared dependencies "
        "changed upstream",
    MergeDecision.CREATE_REVIEW_PR:
        "Review required: open a pull request for the upstream changes",
    MergeDecision.MANUAL_REQUIRED:
        "Manual intervention required: resolve conflicts or restore the "
        "protected feature before syncing",
}


def new_report_id(now: float | None = None) -> str:
    """``FSP-<epoch ms>-<5 random chars>``."""
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(5))
    return f"FSP-{millis}-{suffix}"


def integrity_status(feature_status: FeatureStatus) -> str:
    if not feature_status.critical_files_intact:
        return "CRITICAL"
    if (
        feature_status.risk_assessment != ConflictRisk.LOW
        or not feature_status.fork_urls_valid
    ):
        return "WARNING"
    return "PROTECTED"


def sync_status(divergence: DivergenceStatus) -> str:
    if divergence.behind and divergence.ahead:
        return "DIVERGED"
    if divergence.behind:
        return "BEHIND"
    if divergence.ahead:
        return "AHEAD"
    return "UP_TO_DATE"


def summarize(
    divergence: DivergenceStatus, feature_status: FeatureStatus
) -> ReportSummary:
    integrity = integrity_status(feature_status)
    if integrity == "CRITICAL" or divergence.risk_level == ConflictRisk.HIGH:
        health = "CRITICAL"
    elif integrity == "WARNING" or divergence.risk_level == ConflictRisk.MEDIUM:
        health = "WARNING"
    else:
        health = "HEALTHY"

    protection = {
        "CRITICAL": "COMPROMISED",
        "WARNING": "AT_RISK",
        "PROTECTED": "PROTECTED",
    }[integrity]
    return ReportSummary(
        overall_health=health,
        sync_status=sync_status(divergence),
        protection_status=protection,
    )


class StatusReporter:
    """Assemble the StatusReport handed to external collaborators."""

    def build(
        self,
        upstream: UpstreamRef,
        divergence: DivergenceStatus,
        feature_status: FeatureStatus,
        simulation: MergeSimulationResult,
        decision: MergeDecision,
        analysis: ConflictAnalysis,
        outcome: MergeOutcome | None = None,
        timestamp: datetime | None = None,
    ) -> StatusReport:
        timestamp = timestamp or datetime.now(UTC)
        report = StatusReport(
            timestamp=timestamp,
            report_id=new_report_id(timestamp.timestamp()),
            summary=summarize(divergence, feature_status),
            fork_status=ForkStatusSection(
                ahead=divergence.ahead,
                behind=divergence.behind,
                upstream_ref=f"{upstream.name}@{upstream.short}",
                last_sync=divergence.last_sync,
                risk_level=divergence.risk_level,
            ),
            feature_integrity=FeatureIntegritySection(
                status=integrity_status(feature_status),
                critical_files_intact=feature_status.critical_files_intact,
                dependency_health=feature_status.dependencies_healthy,
                risk_level=feature_status.risk_assessment,
                missing_files=feature_status.missing_files,
                fork_urls_valid=feature_status.fork_urls_valid,
            ),
            merge_simulation=MergeSimulationSection(
                success=simulation.success,
                conflicts=simulation.conflicts,
                recommendation=decision,
                risk_level=simulation.risk_level,
                affected_files=len(simulation.affected_files),
            ),
            decision=decision,
            analysis=analysis,
            outcome=outcome,
            recommendations=self._recommendations(
                divergence, feature_status, decision, outcome
            ),
            action_required=self._action_required(
                divergence, feature_status, simulation, outcome
            ),
        )
        logger.info(
            "Status report built",
            report_id=report.report_id,
            decision=decision.value,
            health=report.summary.overall_health,
            action_required=report.action_required,
        )
        return report

    @staticmethod
    def _recommendations(
        divergence: DivergenceStatus,
        feature_status: FeatureStatus,
        decision: MergeDecision,
        outcome: MergeOutcome | None,
    ) -> list[str]:
        recommendations = []
        if not feature_status.critical_files_intact:
            recommendations.append(
                "Restore missing critical files: "
                + ", ".join(feature_status.missing_files)
            )
        if not feature_status.fork_urls_valid:
            recommendations.append(
                "Update fork-specific URL references to keep attribution "
                f"({feature_status.fork_url_count} found)"
            )
        if divergence.behind > 0:
            recommendations.append(_DECISION_ADVICE[decision])
        if outcome is not None and outcome.rolled_back:
            recommendations.append(
                "Merge was rolled back after post-merge validation failed; "
                "review the dependency changes manually"
            )
        if divergence.behind > FAR_BEHIND_THRESHOLD:
            recommendations.append(
                f"Fork is {divergence.behind} commits behind; consider "
                "syncing more often"
            )
        return recommendations

    @staticmethod
    def _action_required(
        divergence: DivergenceStatus,
        feature_status: FeatureStatus,
        simulation: MergeSimulationResult,
        outcome: MergeOutcome | None,
    ) -> bool:
        return (
            not feature_status.critical_files_intact
            or bool(simulation.conflicts)
            or divergence.risk_level == ConflictRisk.HIGH
            or divergence.behind > ACTION_BEHIND_THRESHOLD
            or (outcome is not None and outcome.rolled_back)
        )


def save_report(report: StatusReport, output_dir: Path) -> Path:
    """Write the report as ``fork-sync-report-<timestamp>.json``."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = report.timestamp.strftime("%Y%m%dT%H%M%S%fZ")
    path = output_dir / f"fork-sync-report-{stamp}.json"
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Report saved", path=str(path))
    return path


def action_outputs(report: StatusReport) -> dict[str, str]:
    """Key/value outputs for the orchestrating workflow."""
    outcome = report.outcome
    return {
        "fork_ahead": str(report.fork_status.ahead),
        "fork_behind": str(report.fork_status.behind),
        "feature_status": report.feature_integrity.status,
        "has_conflicts": str(bool(report.merge_simulation.conflicts)).lower(),
        "merge_decision": report.decision.value,
        "rolled_back": str(bool(outcome and outcome.rolled_back)).lower(),
        "report_id": report.report_id,
    }


def write_action_outputs(report: StatusReport, output_file: Path) -> None:
    """Append ``key=value`` lines to a GitHub Actions output file."""
    with open(output_file, "a", encoding="utf-8") as f:
        for key, value in action_outputs(report).items():
            f.write(f"{key}={value}\n")
    logger.debug("Action outputs written", path=str(output_file))
