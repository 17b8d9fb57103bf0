"""Records passed between pipeline stages."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field

from forksync.core.base import BaseRecord


class ConflictRisk(str, Enum):
    """Three-tier ordinal for severities and risk assessments."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    @classmethod
    def highest(cls, *risks: ConflictRisk) -> ConflictRisk:
        """Maximum of the given risks (LOW when none are given)."""
        return max(risks, key=lambda r: r.rank, default=cls.LOW)


_RISK_ORDER = [ConflictRisk.LOW, ConflictRisk.MEDIUM, ConflictRisk.HIGH]


class SimulationRisk(str, Enum):
    """Aggregate risk of a trial merge."""

    SAFE = "SAFE"
    REVIEW = "REVIEW"
    MANUAL = "MANUAL"

    def as_conflict_risk(self) -> ConflictRisk:
        return {
            SimulationRisk.SAFE: ConflictRisk.LOW,
            SimulationRisk.REVIEW: ConflictRisk.MEDIUM,
            SimulationRisk.MANUAL: ConflictRisk.HIGH,
        }[self]


class ConflictKind(str, Enum):
    CONTENT = "CONTENT"
    RENAME = "RENAME"
    DELETE = "DELETE"
    BINARY = "BINARY"


class MergeDecision(str, Enum):
    AUTO_MERGE = "AUTO_MERGE"
    AUTO_MERGE_WITH_VALIDATION = "AUTO_MERGE_WITH_VALIDATION"
    CREATE_REVIEW_PR = "CREATE_REVIEW_PR"
    MANUAL_REQUIRED = "MANUAL_REQUIRED"

    @property
    def is_auto_merge(self) -> bool:
        return self in (
            MergeDecision.AUTO_MERGE,
            MergeDecision.AUTO_MERGE_WITH_VALIDATION,
        )


# ============================================================
# REPOSITORY STATE
# ============================================================

class UpstreamRef(BaseRecord):
    """Upstream tip observed by one fetch."""

    commit: str = Field(description="Full commit SHA")
    branch: str = Field(description="Upstream branch name")
    remote: str = Field(default="upstream", description="Remote name")

    @property
    def name(self) -> str:
        """Remote-tracking ref, e.g. ``upstream/main``."""
        return f"{self.remote}/{self.branch}"

    @property
    def short(self) -> str:
        return self.commit[:8]


class DivergenceStatus(BaseRecord):
    ahead: int = Field(description="Fork commits missing upstream")
    behind: int = Field(description="Upstream commits missing in fork")
    last_upstream_commit: str
    has_conflicts: bool = Field(
        default=False,
        description="Upstream commits touch a protected path",
    )
    risk_level: ConflictRisk = ConflictRisk.LOW
    last_sync: datetime | None = Field(
        default=None,
        description="Time of the last merge of upstream into the fork",
    )
    protected_changes: list[str] = Field(default_factory=list)


# ============================================================
# FEATURE INTEGRITY
# ============================================================

class FeatureStatus(BaseRecord):
    critical_files_intact: bool
    dependencies_healthy: bool
    risk_assessment: ConflictRisk
    missing_files: list[str] = Field(default_factory=list)
    changed_protected_files: list[str] = Field(default_factory=list)
    changed_dependencies: list[str] = Field(default_factory=list)
    protected_conflicts: list[str] = Field(default_factory=list)
    fork_urls_valid: bool = True
    fork_url_count: int = 0


# ============================================================
# TRIAL MERGE
# ============================================================

class RawConflict(BaseRecord):
    """Colliding path as git reported it, before classification."""

    path: str
    kind: ConflictKind


class TrialMergeResult(BaseRecord):
    """What the gateway observed in a disposable trial worktree."""

    success: bool
    conflicts: list[RawConflict] = Field(default_factory=list)
    affected_files: list[str] = Field(default_factory=list)
    tree_files: list[str] = Field(default_factory=list, repr=False)
    structural_failure: str | None = None


class Conflict(BaseRecord):
    path: str
    kind: ConflictKind
    severity: ConflictRisk
    protected: bool = False


class MergeSimulationResult(BaseRecord):
    """Outcome of a merge attempted in a disposable worktree."""

    success: bool
    conflicts: list[Conflict] = Field(default_factory=list)
    affected_files: list[str] = Field(default_factory=list)
    risk_level: SimulationRisk = SimulationRisk.SAFE
    structural_failure: str | None = Field(
        default=None,
        description="Why git could not attempt the merge at all",
    )
    tree_files: list[str] = Field(
        default_factory=list,
        exclude=True,
        repr=False,
        description="Paths present in the trial post-merge tree",
    )


# ============================================================
# ANALYSIS AND DECISION
# ============================================================

class FileNote(BaseRecord):
    path: str
    kind: ConflictKind
    severity: ConflictRisk
    protected: bool = False


class ConflictAnalysis(BaseRecord):
    overall_risk: ConflictRisk
    recommendation: str
    per_file_notes: list[FileNote] = Field(default_factory=list)


class MergeOutcome(BaseRecord):
    """What AutomatedMerger did with an auto-merge decision."""

    decision: MergeDecision
    committed: bool
    merge_commit_ref: str | None = None
    rolled_back: bool = False
    validation_passed: bool = False
    pre_merge_ref: str | None = None
    validation: FeatureStatus | None = None


# ============================================================
# STATUS REPORT
# ============================================================

class ForkStatusSection(BaseRecord):
    ahead: int
    behind: int
    upstream_ref: str
    last_sync: datetime | None = None
    risk_level: ConflictRisk = ConflictRisk.LOW


class FeatureIntegritySection(BaseRecord):
    status: str = Field(description="PROTECTED, WARNING, or CRITICAL")
    critical_files_intact: bool
    dependency_health: bool
    risk_level: ConflictRisk
    missing_files: list[str] = Field(default_factory=list)
    fork_urls_valid: bool = True


class MergeSimulationSection(BaseRecord):
    success: bool
    conflicts: list[Conflict] = Field(default_factory=list)
    recommendation: MergeDecision
    risk_level: SimulationRisk
    affected_files: int = 0


class ReportSummary(BaseRecord):
    overall_health: str = Field(description="HEALTHY, WARNING, CRITICAL")
    sync_status: str = Field(
        description="UP_TO_DATE, BEHIND, AHEAD, or DIVERGED"
    )
    protection_status: str = Field(
        description="PROTECTED, AT_RISK, or COMPROMISED"
    )


class StatusReport(BaseRecord):
    """The single artifact handed to reporting/PR collaborators."""

    timestamp: datetime
    report_id: str
    summary: ReportSummary
    fork_status: ForkStatusSection
    feature_integrity: FeatureIntegritySection
    merge_simulation: MergeSimulationSection
    decision: MergeDecision
    analysis: ConflictAnalysis
    outcome: MergeOutcome | None = None
    recommendations: list[str] = Field(default_factory=list)
    action_required: bool = False


__all__ = [
    "ConflictRisk",
    "SimulationRisk",
    "ConflictKind",
    "MergeDecision",
    "UpstreamRef",
    "DivergenceStatus",
    "FeatureStatus",
    "RawConflict",
    "TrialMergeResult",
    "Conflict",
    "MergeSimulationResult",
    "FileNote",
    "ConflictAnalysis",
    "MergeOutcome",
    "ForkStatusSection",
    "FeatureIntegritySection",
    "MergeSimulationSection",
    "ReportSummary",
    "StatusReport",
]
