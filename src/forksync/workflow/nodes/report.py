"""Report node - assemble and export the StatusReport."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from forksync.core.config import State
from forksync.core.models import StatusReport
from forksync.report.reporter import (
    StatusReporter,
    save_report,
    write_action_outputs,
)


@dataclass
class Report(BaseNode[State, None, StatusReport]):
    async def run(self, ctx: GraphRunContext[State]) -> End[StatusReport]:
        """Build the report, then save it and the action outputs.

        Returns:
            End[StatusReport]: The run's sole output artifact
        """
        config = ctx.state.config
        sync = ctx.state.runtime.sync

        report = StatusReporter().build(
            upstream=sync.upstream,
            divergence=sync.divergence,
            feature_status=sync.feature_status,
            simulation=sync.simulation,
            decision=sync.decision,
            analysis=sync.analysis,
            outcome=sync.outcome,
        )
        if config.report.save:
            save_report(report, config.report.output_dir)
        if config.report.github_output:
            write_action_outputs(report, config.report.github_output)

        sync.report = report
        sync.status = "complete"
        return End(report)
