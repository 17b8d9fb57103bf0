#!/usr/bin/env python3
"""forksync CLI - keep a fork in sync without breaking its feature."""

import asyncio
import sys

from pydantic_settings import CliApp, CliSubCommand, get_subcommand

from forksync.command.reset import ResetCommand
from forksync.command.sync import SyncCommand
from forksync.core.config import State
from forksync.core.log import logger


class CliState(State):
    """Synchronize a fork with its upstream while protecting the
    fork's own feature.

    Each run fetches upstream, trial-merges it in a disposable
    worktree, checks the protected paths, and either merges
    automatically or asks for human review.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.git.primary_branch value)
    2. forksync.yaml in the current directory (and --include files)
    3. .env file
    4. Environment variables (FORKSYNC_CONFIG__GIT__PRIMARY_BRANCH=value)
    """

    sync: CliSubCommand[SyncCommand]
    reset: CliSubCommand[ResetCommand]

    def cli_cmd(self):
        """Dispatch to the active subcommand, or show help."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            CliApp.run(CliState, cli_args=['--help'])
            sys.exit(1)

        with self.config:
            exit_code = asyncio.run(subcommand.run_workflow(self))
        raise SystemExit(exit_code)


def main():
    """Main entry point for CLI."""
    from pydantic import ValidationError

    from forksync.core.errors import ConfigurationError

    try:
        CliApp.run(CliState)
    except (ValidationError, ConfigurationError) as e:
        logger.error("Invalid configuration", error=str(e))
        print(f"forksync: invalid configuration: {e}", file=sys.stderr)
        raise SystemExit(2) from e


if __name__ == "__main__":
    main()
