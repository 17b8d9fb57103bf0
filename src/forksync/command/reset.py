"""Reset command - clean up after crashed runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from forksync.core.errors import ForkSyncError
from forksync.core.lock import WorkspaceLock
from forksync.core.log import logger
from forksync.git.gateway import RepositoryGateway

if TYPE_CHECKING:
    from forksync.core.config import State


class ResetCommand(BaseModel):
    """Remove leftover trial worktrees and branches.

    A run killed mid-simulation can leave a forksync/trial/* branch or
    worktree behind, and possibly its lock file. Reset removes them;
    the primary branch is never touched.
    """

    break_lock: bool = Field(
        default=False,
        alias="break-lock",
        description="Remove a stale lock file before cleaning up",
    )

    model_config = ConfigDict(populate_by_name=True)

    async def run_workflow(self, state: State) -> int:
        """Run reset workflow.

        Returns:
            Exit code (0=success, 1=failure)
        """
        config = state.config
        state.runtime.reset.break_lock = self.break_lock

        try:
            gateway = RepositoryGateway.from_config(config)
            state.runtime.sync.gateway = gateway
            lock = WorkspaceLock(gateway.git_dir() / config.lock.filename)
            if self.break_lock:
                state.runtime.reset.lock_broken = lock.break_lock()

            from forksync.workflow.graph import create_reset_workflow
            from forksync.workflow.nodes.reset import Reset

            with lock:
                await create_reset_workflow().run(Reset(), state=state)
        except ForkSyncError as e:
            logger.error("Reset failed", error=str(e))
            return 1

        logger.info("Reset complete")
        return 0
