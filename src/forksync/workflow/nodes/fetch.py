"""Fetch node - pin the upstream tip and measure divergence."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from forksync.analysis.divergence import assess_divergence
from forksync.core.config import State
from forksync.core.log import logger
from forksync.core.retry import retry_with_backoff


@dataclass
class Fetch(BaseNode[State]):
    """Fetch upstream with retry and record how far the fork drifted."""

    async def run(self, ctx: GraphRunContext[State]) -> Simulate:
        config = ctx.state.config
        sync = ctx.state.runtime.sync
        gateway = sync.gateway
        git = config.git
        network = config.network
        sync.status = "running"

        with logger.span("Fetching upstream", remote=git.upstream_remote):
            if git.upstream_url:
                gateway.ensure_remote(git.upstream_remote, git.upstream_url)

            upstream = retry_with_backoff(
                lambda: gateway.fetch(git.upstream_remote, git.upstream_branch),
                attempts=network.max_attempts,
                backoff_factor=network.backoff_factor,
                max_backoff=network.max_backoff,
                description="Upstream fetch",
            )

            base = git.primary_branch
            ahead, behind = gateway.divergence(base, upstream)
            changed = list(dict.fromkeys(
                path for _, path in gateway.changed_files(base, upstream)
            ))
            divergence = assess_divergence(
                ahead=ahead,
                behind=behind,
                upstream=upstream,
                changed_files=changed,
                protected_paths=sync.protected_paths,
                last_sync=gateway.last_sync(base, upstream),
            )

        sync.upstream = upstream
        sync.changed_files = changed
        sync.divergence = divergence
        logger.info(
            "Divergence measured",
            ahead=ahead,
            behind=behind,
            changed_files=len(changed),
            risk=divergence.risk_level.value,
        )

        from forksync.workflow.nodes.simulate import Simulate
        return Simulate()
