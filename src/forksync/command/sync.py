"""Sync command - run the protection pipeline once."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from forksync.core.errors import (
    ConcurrentRunError,
    ConfigurationError,
    ForkSyncError,
    NetworkError,
)
from forksync.core.lock import WorkspaceLock
from forksync.core.log import logger
from forksync.git.gateway import RepositoryGateway

if TYPE_CHECKING:
    from forksync.core.config import State

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


class SyncCommand(BaseModel):
    """Fetch upstream, simulate the merge, and merge or request review.

    Reaching CREATE_REVIEW_PR or MANUAL_REQUIRED is a successful run;
    only network exhaustion, lock contention, configuration problems
    and internal failures exit non-zero.
    """

    dry_run: bool = Field(
        default=False,
        alias="dry-run",
        description="Stop after the decision; never merge",
    )

    model_config = ConfigDict(populate_by_name=True)

    async def run_workflow(self, state: State) -> int:
        """Run the sync pipeline under the workspace lock.

        Returns:
            Exit code: 0 completed, 1 run failure, 2 bad configuration
        """
        try:
            report = await self.execute(state)
        except ConfigurationError as e:
            logger.error("Configuration error", error=str(e))
            return EXIT_CONFIG
        except (NetworkError, ConcurrentRunError) as e:
            logger.error("Sync run failed", error=str(e))
            return EXIT_FAILURE
        except ForkSyncError as e:
            state.runtime.sync.status = "failed"
            logger.error("Sync run failed unexpectedly", error=str(e))
            return EXIT_FAILURE

        print(report.model_dump_json(indent=2))
        return EXIT_OK

    async def execute(self, state: State):
        """Run the pipeline and return its StatusReport.

        Raises:
            ConfigurationError, NetworkError, ConcurrentRunError, or any
            other ForkSyncError that ends the run
        """
        config = state.config
        sync = state.runtime.sync
        sync.dry_run = self.dry_run
        sync.protected_paths = config.protected_paths()

        gateway = RepositoryGateway.from_config(config)
        sync.gateway = gateway
        lock = WorkspaceLock(gateway.git_dir() / config.lock.filename)

        from forksync.workflow.graph import create_sync_workflow
        from forksync.workflow.nodes.fetch import Fetch

        with lock:
            result = await create_sync_workflow().run(Fetch(), state=state)
        return result.output
