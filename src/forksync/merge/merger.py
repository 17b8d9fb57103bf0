"""Real merge of upstream into the primary branch, with rollback."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field

from forksync.core.base import BaseRecord
from forksync.core.errors import IntegrityValidationFailure, InvalidDecisionError
from forksync.core.log import logger
from forksync.core.models import (
    MergeDecision,
    MergeOutcome,
    SimulationRisk,
    UpstreamRef,
)
from forksync.protection.registry import ProtectedPathSet

# Affected files listed in a merge commit message before truncating
MESSAGE_FILE_LIMIT = 10


class MergeMetadata(BaseRecord):
    """Context recorded in the merge commit and used to re-validate."""

    risk_level: SimulationRisk = SimulationRisk.SAFE
    affected_files: list[str] = Field(default_factory=list)
    changed_files: list[str] = Field(default_factory=list)
    upstream_subject: str = ""
    run_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


def build_commit_message(
    upstream: UpstreamRef,
    metadata: MergeMetadata,
    template: str | None = None,
) -> str:
    """Render the merge commit message.

    Args:
        upstream: Upstream tip being merged
        metadata: Merge context
        template: Optional str.format template; receives source,
            commit, risk, file_count, files, run_id, timestamp

    Returns:
        Commit message text
    """
    files = metadata.affected_files
    listed = [f"- {path}" for path in files[:MESSAGE_FILE_LIMIT]]
    if len(files) > MESSAGE_FILE_LIMIT:
        listed.append(f"... and {len(files) - MESSAGE_FILE_LIMIT} more files")
    source = upstream.short
    if metadata.upstream_subject:
        source = f"{source}: {metadata.upstream_subject}"
    stamp = metadata.timestamp.isoformat()

    if template:
        return template.format(
            source=source,
            commit=upstream.commit,
            risk=metadata.risk_level.value,
            file_count=len(files),
            files="\n".join(listed),
            run_id=metadata.run_id or "",
            timestamp=stamp,
        )

    lines = [
        "Auto-merge upstream changes",
        "",
        f"Merged from: {upstream.name} {source}",
        f"Risk assessment: {metadata.risk_level.value}",
        f"Files affected: {len(files)}",
    ]
    if listed:
        lines += ["", "Modified files:", *listed]
    lines.append("")
    if metadata.run_id:
        lines.append(f"Workflow run: {metadata.run_id}")
    lines.append(f"Timestamp: {stamp}")
    return "\n".join(lines) + "\n"


class AutomatedMerger:
    """Commit a merge that DecisionEngine authorized.

    The primary branch either ends at the new merge commit with the
    feature validated, or exactly where it started.
    """

    def __init__(
        self,
        gateway,
        checker,
        protected_paths: ProtectedPathSet,
        message_template: str | None = None,
    ):
        self.gateway = gateway
        self.checker = checker
        self.protected_paths = protected_paths
        self.message_template = message_template

    def apply(
        self,
        decision: MergeDecision,
        base: str,
        upstream: UpstreamRef,
        metadata: MergeMetadata,
    ) -> MergeOutcome:
        """Merge, optionally re-validate, and roll back on failure.

        Args:
            decision: AUTO_MERGE or AUTO_MERGE_WITH_VALIDATION
            base: Primary branch name
            upstream: Upstream tip the simulation approved
            metadata: Commit message and re-validation context

        Returns:
            MergeOutcome; rolled_back=True when post-merge validation
            failed and the branch was restored

        Raises:
            InvalidDecisionError: Decision is not an auto-merge
            MergeCommitError: Merge could not be committed (the gateway
                has already restored the branch)
        """
        if not decision.is_auto_merge:
            raise InvalidDecisionError(
                "AutomatedMerger only executes auto-merge decisions",
                decision=decision.value,
            )

        previous = self.gateway.rev_parse(base)
        message = build_commit_message(upstream, metadata, self.message_template)

        with logger.span("Applying merge", decision=decision.value):
            head = self.gateway.commit_merge(base, upstream, message)
            committed = head != previous

            if decision != MergeDecision.AUTO_MERGE_WITH_VALIDATION:
                return MergeOutcome(
                    decision=decision,
                    committed=committed,
                    merge_commit_ref=head if committed else None,
                    validation_passed=True,
                    pre_merge_ref=previous,
                )

            try:
                validation = self.checker.validate(
                    self.protected_paths, metadata.changed_files, ref=base
                )
                if not validation.critical_files_intact:
                    raise IntegrityValidationFailure(
                        "Critical files missing after merge",
                        files=", ".join(validation.missing_files),
                    )
            except IntegrityValidationFailure as e:
                logger.warn("Post-merge validation failed, rolling back",
                            error=str(e))
                self.gateway.reset_branch(base, previous)
                return MergeOutcome(
                    decision=decision,
                    committed=False,
                    rolled_back=True,
                    validation_passed=False,
                    pre_merge_ref=previous,
                    validation=validation,
                )
            except Exception:
                # Never leave an unvalidated merge behind
                self.gateway.reset_branch(base, previous)
                raise

        logger.info("Post-merge validation passed", commit=head[:8])
        return MergeOutcome(
            decision=decision,
            committed=committed,
            merge_commit_ref=head if committed else None,
            validation_passed=True,
            pre_merge_ref=previous,
            validation=validation,
        )
