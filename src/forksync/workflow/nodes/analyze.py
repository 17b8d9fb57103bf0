"""Analyze node - classify conflicts into an overall risk."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from forksync.analysis.conflicts import ConflictAnalyzer
from forksync.core.config import State
from forksync.core.log import logger


@dataclass
class Analyze(BaseNode[State]):
    async def run(self, ctx: GraphRunContext[State]) -> Decide:
        sync = ctx.state.runtime.sync
        sync.analysis = ConflictAnalyzer().analyze(
            sync.simulation.conflicts,
            sync.feature_status,
            sync.simulation.risk_level,
        )
        logger.info(
            "Conflicts analyzed",
            overall_risk=sync.analysis.overall_risk.value,
            recommendation=sync.analysis.recommendation,
        )

        from forksync.workflow.nodes.decide import Decide
        return Decide()
