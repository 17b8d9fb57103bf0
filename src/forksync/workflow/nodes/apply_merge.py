"""ApplyMerge node - commit the authorized merge."""

from __future__ import annotations

import os
from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from forksync.core.config import State
from forksync.merge.merger import AutomatedMerger, MergeMetadata
from forksync.protection.integrity import FeatureIntegrityChecker


@dataclass
class ApplyMerge(BaseNode[State]):
    """Merge upstream into the primary branch, rolling back on failure."""

    async def run(self, ctx: GraphRunContext[State]) -> Report:
        config = ctx.state.config
        sync = ctx.state.runtime.sync
        gateway = sync.gateway
        base = config.git.primary_branch

        merger = AutomatedMerger(
            gateway,
            FeatureIntegrityChecker(gateway, ref=base),
            sync.protected_paths,
            message_template=config.git.commit_message_template,
        )
        metadata = MergeMetadata(
            risk_level=sync.simulation.risk_level,
            affected_files=sync.simulation.affected_files,
            changed_files=sync.changed_files,
            upstream_subject=gateway.commit_subject(sync.upstream.commit),
            run_id=os.environ.get("GITHUB_RUN_ID"),
        )
        sync.outcome = merger.apply(sync.decision, base, sync.upstream, metadata)

        from forksync.workflow.nodes.report import Report
        return Report()
