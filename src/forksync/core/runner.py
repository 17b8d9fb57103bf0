"""Command execution through invoke."""

import contextlib
import os
from pathlib import Path

from invoke import Context, Result
from invoke.exceptions import CommandTimedOut

from forksync.core.log import logger


class Runner(Context):
    """invoke.Context with a single ``execute`` entry point.

    All git invocations go through here so that timeouts, working
    directory handling, and trace logging behave the same for every
    repository operation.
    """

    def kill(self) -> None:
        """Kill the running subprocess.

        invoke sends signal.SIGKILL, which does not exist on
        Windows. os.kill() there accepts the plain number and hands
        it to TerminateProcess(), so send 9 directly.
        """
        import platform

        if platform.system() == "Windows":
            pid = self.pid if self.using_pty else self.process.pid
            with contextlib.suppress(ProcessLookupError):
                os.kill(pid, 9)
            return
        super().kill()

    def execute(
        self,
        command: str,
        cwd: Path | None = None,
        timeout: int | None = None,
        check: bool = True,
        env: dict[str, str] | None = None,
    ) -> Result:
        """Run a command and capture its output.

        Args:
            command: Shell command line
            cwd: Working directory
            timeout: Seconds before the command is killed
            check: Raise invoke.UnexpectedExit on non-zero exit
            env: Extra environment variables (merged into os.environ)

        Returns:
            invoke.Result; a timed-out command reports exited == -1
        """
        kwargs = {"hide": True, "warn": not check, "in_stream": False}
        if timeout:
            kwargs["timeout"] = timeout
        if env:
            kwargs["env"] = env

        logger.trace("exec", command=command, cwd=str(cwd) if cwd else None)

        try:
            if cwd:
                with self.cd(str(cwd)):
                    result = self.run(command, **kwargs)
            else:
                result = self.run(command, **kwargs)
        except CommandTimedOut as e:
            result = e.result
            result.exited = -1
            logger.warn(
                "Command timed out", command=command, timeout=timeout
            )

        logger.trace(
            "exec finished", command=command, exited=result.exited
        )
        return result
