"""ValidateIntegrity node - check the protected feature."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from forksync.core.config import State
from forksync.protection.integrity import FeatureIntegrityChecker


@dataclass
class ValidateIntegrity(BaseNode[State]):
    """Validate the feature against the trial merge's post-merge tree."""

    async def run(self, ctx: GraphRunContext[State]) -> Analyze:
        sync = ctx.state.runtime.sync
        simulation = sync.simulation
        checker = FeatureIntegrityChecker(
            sync.gateway, ref=ctx.state.config.git.primary_branch
        )

        # A merge git refused to run produced no tree to inspect
        tree_files = (
            simulation.tree_files
            if simulation.structural_failure is None
            else None
        )
        sync.feature_status = checker.validate(
            sync.protected_paths,
            sync.changed_files,
            tree_files=tree_files,
            conflicts=simulation.conflicts,
        )

        from forksync.workflow.nodes.analyze import Analyze
        return Analyze()
