"""Decide node - route the run to a merge or to a human."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from forksync.analysis.decision import decide
from forksync.core.config import State
from forksync.core.log import logger


@dataclass
class Decide(BaseNode[State]):
    """Apply the decision table and pick the next stage."""

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> ApplyMerge | RequestReview | Report:
        """Route on the decision.

        Returns:
            ApplyMerge for auto-merge decisions, RequestReview for the
            others, or Report directly on a dry run
        """
        sync = ctx.state.runtime.sync
        decision = decide(
            sync.divergence,
            sync.feature_status,
            sync.simulation,
            sync.analysis,
        )
        sync.decision = decision
        logger.info("Merge decision", decision=decision.value)

        from forksync.workflow.nodes.apply_merge import ApplyMerge
        from forksync.workflow.nodes.report import Report
        from forksync.workflow.nodes.request_review import RequestReview

        if sync.dry_run:
            logger.info("Dry run: stopping before any merge")
            return Report()
        if decision.is_auto_merge:
            return ApplyMerge()
        return RequestReview()
