"""Ahead/behind divergence and its risk level."""

from __future__ import annotations

from datetime import datetime

from forksync.core.models import ConflictRisk, DivergenceStatus, UpstreamRef
from forksync.protection.registry import ProtectedPathSet

# Behind by more than this many commits raises divergence risk to MEDIUM
BEHIND_WARNING_THRESHOLD = 10


def assess_divergence(
    ahead: int,
    behind: int,
    upstream: UpstreamRef,
    changed_files: list[str],
    protected_paths: ProtectedPathSet,
    last_sync: datetime | None = None,
) -> DivergenceStatus:
    """Summarize how far the fork has drifted from upstream.

    Args:
        ahead: Fork commits upstream lacks
        behind: Upstream commits the fork lacks
        upstream: Fetched upstream tip
        changed_files: Paths upstream changed since the merge base
        protected_paths: Registry of the fork's feature
        last_sync: Commit time of the merge base

    Returns:
        DivergenceStatus; HIGH risk if upstream touched a protected
        path, MEDIUM if far behind, LOW otherwise
    """
    touched = protected_paths.protected(changed_files)
    if touched:
        risk = ConflictRisk.HIGH
    elif behind > BEHIND_WARNING_THRESHOLD:
        risk = ConflictRisk.MEDIUM
    else:
        risk = ConflictRisk.LOW

    return DivergenceStatus(
        ahead=ahead,
        behind=behind,
        last_upstream_commit=upstream.commit,
        has_conflicts=bool(touched),
        risk_level=risk,
        last_sync=last_sync,
        protected_changes=touched,
    )
