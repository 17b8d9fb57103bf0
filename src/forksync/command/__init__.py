"""CLI command modules for forksync."""

from forksync.command.reset import ResetCommand
from forksync.command.sync import SyncCommand

__all__ = ["SyncCommand", "ResetCommand"]
