"""Simulate node - trial merge in a disposable worktree."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from forksync.analysis.simulator import MergeSimulator
from forksync.core.config import State


@dataclass
class Simulate(BaseNode[State]):
    async def run(self, ctx: GraphRunContext[State]) -> ValidateIntegrity:
        sync = ctx.state.runtime.sync
        simulator = MergeSimulator(sync.gateway)
        sync.simulation = simulator.simulate(
            ctx.state.config.git.primary_branch,
            sync.upstream,
            sync.protected_paths,
        )

        from forksync.workflow.nodes.validate import ValidateIntegrity
        return ValidateIntegrity()
