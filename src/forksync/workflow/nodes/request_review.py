"""RequestReview node - hand the run to the PR collaborator."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from forksync.core.config import State
from forksync.core.log import logger
from forksync.core.models import MergeDecision


@dataclass
class RequestReview(BaseNode[State]):
    """Record the review or manual signal; performs no I/O."""

    async def run(self, ctx: GraphRunContext[State]) -> Report:
        sync = ctx.state.runtime.sync
        if sync.decision == MergeDecision.MANUAL_REQUIRED:
            logger.warn(
                "Manual intervention required",
                recommendation=sync.analysis.recommendation,
            )
        else:
            logger.info(
                "Review pull request requested",
                conflicts=len(sync.simulation.conflicts),
                upstream=sync.upstream.short,
            )

        from forksync.workflow.nodes.report import Report
        return Report()
