"""Reset node - remove leftover trial worktrees and branches."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from forksync.core.config import State
from forksync.core.log import logger


@dataclass
class Reset(BaseNode[State]):
    """Discard every trial workspace a crashed run may have left."""

    async def run(self, ctx: GraphRunContext[State]) -> End[None]:
        gateway = ctx.state.runtime.sync.gateway
        gateway.discard_trial()
        ctx.state.runtime.reset.status = "complete"
        logger.info("Trial workspaces discarded")
        return End(None)
