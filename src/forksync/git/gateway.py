"""Source-control operations against the fork's working copy.

RepositoryGateway is the only component that runs git. It owns the
working copy and every ephemeral trial branch/worktree it creates,
and removes those before returning on every exit path.
"""

from __future__ import annotations

import shlex
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from forksync.core.errors import (
    GitCommandError,
    MergeCommitError,
    NetworkError,
)
from forksync.core.log import logger
from forksync.core.models import TrialMergeResult, UpstreamRef
from forksync.core.runner import Runner
from forksync.git.parser import (
    parse_conflicts,
    parse_failure,
    parse_name_status,
    parse_null_list,
    parse_status,
)

# Substrings of git fetch errors that mean "the network let us down"
_NETWORK_FAILURES = (
    "could not resolve host",
    "could not resolve hostname",
    "connection timed out",
    "connection refused",
    "connection reset",
    "network is unreachable",
    "operation timed out",
    "authentication failed",
    "permission denied",
    "could not read from remote repository",
    "unable to access",
    "the remote end hung up",
    "early eof",
    "does not appear to be a git repository",
)


def _quote(value) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(shlex.quote(str(v)) for v in value)
    return shlex.quote(str(value))


class RepositoryGateway:
    """Wrap git fetch, branch, merge, diff, and reset for one repo.

    Every command comes from the ``git`` command templates in the
    configuration so that projects can adjust flags without code
    changes.
    """

    def __init__(
        self,
        workdir: Path,
        commands: dict[str, str],
        primary_branch: str = "main",
        trial_prefix: str = "forksync/trial",
        network_timeout: int | None = 120,
        env: dict[str, str] | None = None,
        runner: Runner | None = None,
    ):
        """Initialize gateway.

        Args:
            workdir: Path to the fork's working copy
            commands: Git command templates keyed by name
            primary_branch: Branch whose tip only commit_merge moves
            trial_prefix: Branch namespace for disposable trials
            network_timeout: Seconds before a fetch is abandoned
            env: Extra environment for every git call
            runner: Command runner (a fresh Runner by default)
        """
        self.workdir = Path(workdir)
        self.commands = commands
        self.primary_branch = primary_branch
        self.trial_prefix = trial_prefix.rstrip("/")
        self.network_timeout = network_timeout
        self.env = {
            "GIT_TERMINAL_PROMPT": "0",
            "GIT_MERGE_AUTOEDIT": "no",
            **(env or {}),
        }
        self.runner = runner or Runner()
        self._trial_path: Path | None = None
        self._trial_branch: str | None = None

    @classmethod
    def from_config(cls, config) -> RepositoryGateway:
        """Build a gateway from a loaded Config."""
        git = config.git
        env = {}
        if git.author_name:
            env["GIT_AUTHOR_NAME"] = env["GIT_COMMITTER_NAME"] = git.author_name
        if git.author_email:
            env["GIT_AUTHOR_EMAIL"] = env["GIT_COMMITTER_EMAIL"] = (
                git.author_email
            )
        return cls(
            workdir=git.workdir,
            commands=config.commands.get("git", {}),
            primary_branch=git.primary_branch,
            trial_prefix=git.trial_prefix,
            network_timeout=config.network.timeout,
            env=env,
        )

    # ============================================================
    # COMMAND PLUMBING
    # ============================================================

    def _command(self, name: str, **fields) -> str:
        try:
            template = self.commands[name]
        except KeyError as e:
            raise KeyError(f"No git command template named '{name}'") from e
        return template.format(
            **{key: _quote(value) for key, value in fields.items()}
        )

    def _git(
        self,
        name: str,
        cwd: Path | None = None,
        check: bool = True,
        timeout: int | None = None,
        **fields,
    ):
        command = self._command(name, **fields)
        result = self.runner.execute(
            command,
            cwd=cwd or self.workdir,
            timeout=timeout,
            check=False,
            env=self.env,
        )
        if check and result.exited != 0:
            raise GitCommandError(command, result.exited, result.stderr)
        return result

    def rev_parse(self, ref: str, cwd: Path | None = None) -> str | None:
        """Commit SHA for ``ref``, or None if it does not resolve."""
        result = self._git("rev_parse", cwd=cwd, check=False, ref=ref)
        sha = result.stdout.strip()
        return sha if result.exited == 0 and sha else None

    def _require_commit(self, ref: str) -> str:
        sha = self.rev_parse(ref)
        if sha is None:
            raise GitCommandError(f"rev-parse {ref}", 128, "unknown revision")
        return sha

    def git_dir(self) -> Path:
        """Absolute path of the repository's git directory."""
        return Path(self._git("git_dir").stdout.strip())

    def current_branch(self) -> str | None:
        result = self._git("current_branch", check=False)
        return result.stdout.strip() or None

    def is_clean(self, cwd: Path | None = None) -> bool:
        """True if tracked files have no staged or unstaged changes."""
        return not self._git("status_porcelain", cwd=cwd).stdout.strip("\0\n")

    # ============================================================
    # FETCH AND DIVERGENCE
    # ============================================================

    def ensure_remote(self, remote: str, url: str) -> None:
        """Add ``remote`` pointing at ``url``, or repoint it."""
        current = self._git("remote_get_url", check=False, remote=remote)
        if current.exited != 0:
            self._git("remote_add", remote=remote, url=url)
            logger.info("Added upstream remote", remote=remote, url=url)
        elif current.stdout.strip() != url:
            self._git("remote_set_url", remote=remote, url=url)
            logger.info("Updated upstream remote", remote=remote, url=url)

    def fetch(self, remote: str, branch: str) -> UpstreamRef:
        """Fetch ``branch`` from ``remote`` and pin its tip.

        Raises:
            NetworkError: Timeout, DNS, or authentication failure
            GitCommandError: Any other fetch failure
        """
        command = self._command("fetch", remote=remote, branch=branch)
        with logger.span("git fetch", remote=remote, branch=branch):
            result = self.runner.execute(
                command,
                cwd=self.workdir,
                timeout=self.network_timeout,
                check=False,
                env=self.env,
            )
        if result.exited == -1:
            raise NetworkError(
                "Fetch timed out", remote=remote, timeout=self.network_timeout
            )
        if result.exited != 0:
            stderr = result.stderr.lower()
            if any(marker in stderr for marker in _NETWORK_FAILURES):
                raise NetworkError(
                    "Fetch failed", remote=remote,
                    stderr=result.stderr.strip()[:300],
                )
            raise GitCommandError(command, result.exited, result.stderr)

        commit = self._require_commit(f"refs/remotes/{remote}/{branch}")
        upstream = UpstreamRef(commit=commit, branch=branch, remote=remote)
        logger.info("Fetched upstream", ref=upstream.name, commit=upstream.short)
        return upstream

    def _count(self, range_: str) -> int:
        return int(self._git("rev_list_count", range=range_).stdout.strip())

    def divergence(self, local_ref: str, upstream: UpstreamRef) -> tuple[int, int]:
        """(ahead, behind) commit counts of ``local_ref`` vs upstream."""
        ahead = self._count(f"{upstream.commit}..{local_ref}")
        behind = self._count(f"{local_ref}..{upstream.commit}")
        return ahead, behind

    def merge_base(self, local_ref: str, upstream: UpstreamRef) -> str | None:
        """Best common ancestor, or None when the histories are unrelated."""
        result = self._git(
            "merge_base", check=False, base=local_ref, upstream=upstream.commit
        )
        sha = result.stdout.strip()
        return sha if result.exited == 0 and sha else None

    def last_sync(self, local_ref: str, upstream: UpstreamRef) -> datetime | None:
        """Commit time of the newest upstream commit already merged."""
        base = self.merge_base(local_ref, upstream)
        if base is None:
            return None
        stamp = self._git("commit_date", ref=base).stdout
        return datetime.fromisoformat(stamp.strip())

    def changed_files(self, base: str, upstream: UpstreamRef) -> list[tuple[str, str]]:
        """(status, path) pairs upstream changed since the merge base.

        Unrelated histories (an upstream rewritten from scratch) have no
        merge base; the two trees are then compared directly.
        """
        command = "diff_name_status"
        if self.merge_base(base, upstream) is None:
            logger.warn(
                "Upstream shares no history with the fork",
                base=base, upstream=upstream.short,
            )
            command = "diff_name_status_trees"
        output = self._git(command, base=base, upstream=upstream.commit).stdout
        return parse_name_status(output)

    def tree_files(self, ref: str) -> list[str]:
        """Every path in the tree of ``ref``."""
        return parse_null_list(self._git("ls_tree", ref=ref).stdout)

    def count_matches(self, ref: str, pattern: str, paths: list[str]) -> int:
        """Number of lines under ``paths`` at ``ref`` containing ``pattern``."""
        result = self._git(
            "grep_count", check=False, ref=ref, pattern=pattern,
            paths=paths or ["."],
        )
        # git grep exits 1 when nothing matches
        if result.exited not in (0, 1):
            raise GitCommandError("git grep", result.exited, result.stderr)
        total = 0
        for line in result.stdout.splitlines():
            _, _, count = line.rpartition(":")
            if count.strip().isdigit():
                total += int(count)
        return total

    def commit_subject(self, ref: str) -> str:
        return self._git("commit_subject", check=False, ref=ref).stdout.strip()

    # ============================================================
    # TRIAL MERGE
    # ============================================================

    def trial_merge(self, base: str, upstream: UpstreamRef) -> TrialMergeResult:
        """Merge upstream into a throwaway worktree of ``base``.

        The primary branch and working copy are never touched: the
        merge runs with --no-commit on a disposable branch checked
        out in a temporary worktree, which is removed before this
        returns or raises.
        """
        base_commit = self._require_commit(base)
        self.discard_trial()
        self._trial_branch = f"{self.trial_prefix}/{uuid4().hex[:12]}"
        self._trial_path = Path(tempfile.mkdtemp(prefix="forksync-trial-"))

        try:
            self._git(
                "worktree_add",
                branch=self._trial_branch,
                path=self._trial_path,
                ref=base_commit,
            )
            logger.debug(
                "Trial worktree created",
                path=str(self._trial_path),
                branch=self._trial_branch,
            )
            return self._run_trial(base_commit, upstream)
        finally:
            self.discard_trial()

    def _run_trial(self, base_commit: str, upstream: UpstreamRef) -> TrialMergeResult:
        trial = self._trial_path
        merge = self._git(
            "merge_trial", cwd=trial, check=False, ref=upstream.commit
        )
        merge_output = merge.stdout + merge.stderr

        status = self._git("status_porcelain", cwd=trial).stdout
        unmerged = parse_status(status)
        affected = parse_null_list(
            self._git("diff_cached_names", cwd=trial, ref=base_commit).stdout
        )
        affected = sorted(set(affected) | set(unmerged))

        if merge.exited != 0 and not unmerged:
            reason = parse_failure(merge_output)
            logger.warn("Trial merge failed structurally", reason=reason)
            return TrialMergeResult(
                success=False,
                affected_files=affected,
                structural_failure=reason,
            )

        conflicts = parse_conflicts(status, merge_output)
        tree = sorted(set(parse_null_list(self._git("ls_files", cwd=trial).stdout)))
        logger.info(
            "Trial merge finished",
            conflicts=len(conflicts),
            affected_files=len(affected),
        )
        return TrialMergeResult(
            success=not conflicts,
            conflicts=conflicts,
            affected_files=affected,
            tree_files=tree,
        )

    def discard_trial(self) -> None:
        """Remove trial worktrees and branches, including stale ones.

        Idempotent: calling it twice, or when no trial exists, is a
        no-op. Failures are logged and cleanup continues with the
        next item.
        """
        paths = [self._trial_path] if self._trial_path else []
        branches = [self._trial_branch] if self._trial_branch else []
        self._trial_path = None
        self._trial_branch = None

        for path, branch in self._stale_trial_worktrees():
            if path not in paths:
                paths.append(path)
            if branch and branch not in branches:
                branches.append(branch)

        for path in paths:
            if path.exists():
                self._git("merge_abort", cwd=path, check=False)
            self._git("worktree_remove", check=False, path=path)
            if path.exists():
                shutil.rmtree(path, ignore_errors=True)
        self._git("worktree_prune", check=False)

        listed = self._git(
            "branch_list", check=False, prefix=self.trial_prefix
        ).stdout.split()
        for branch in dict.fromkeys(branches + listed):
            result = self._git("branch_delete", check=False, branch=branch)
            if result.exited != 0 and self.rev_parse(f"refs/heads/{branch}"):
                logger.warn("Could not delete trial branch", branch=branch)

        if paths or branches or listed:
            logger.debug(
                "Trial workspace discarded",
                worktrees=len(paths),
                branches=len(set(branches + listed)),
            )

    def _stale_trial_worktrees(self) -> list[tuple[Path, str | None]]:
        result = self._git("worktree_list", check=False)
        found = []
        path = None
        for line in result.stdout.splitlines():
            if line.startswith("worktree "):
                path = Path(line[len("worktree "):])
            elif line.startswith("branch ") and path is not None:
                branch = line[len("branch "):].removeprefix("refs/heads/")
                if branch.startswith(self.trial_prefix + "/"):
                    found.append((path, branch))
        return found

    # ============================================================
    # REAL MERGE
    # ============================================================

    def commit_merge(
        self, base: str, upstream: UpstreamRef, message: str
    ) -> str:
        """Merge upstream into the primary branch and commit.

        The only operation that moves the primary branch. On any
        failure the branch is hard-reset to its previous tip before
        MergeCommitError is raised.

        Args:
            base: Primary branch name (must equal primary_branch)
            upstream: Fetched upstream tip
            message: Merge commit message

        Returns:
            SHA of the new tip (the old tip when already up to date)

        Raises:
            MergeCommitError: Merge conflicted or could not run
        """
        if base != self.primary_branch:
            raise MergeCommitError(
                "Refusing to merge into a non-primary branch", branch=base
            )
        if not self.is_clean():
            raise MergeCommitError(
                "Working copy has uncommitted changes", workdir=str(self.workdir)
            )
        if self.current_branch() != base:
            self._git("checkout", branch=base)

        previous = self._require_commit(base)
        with tempfile.NamedTemporaryFile(
            "w", suffix=".txt", delete=False, encoding="utf-8"
        ) as f:
            f.write(message)
            message_file = Path(f.name)

        try:
            result = self._git(
                "merge_commit",
                check=False,
                message_file=message_file,
                ref=upstream.commit,
            )
        finally:
            message_file.unlink(missing_ok=True)

        if result.exited != 0:
            self._git("merge_abort", check=False)
            self.reset_branch(base, previous)
            raise MergeCommitError(
                "Merge did not complete cleanly",
                upstream=upstream.short,
                reason=parse_failure(result.stdout + result.stderr),
            )

        head = self._require_commit(base)
        logger.info(
            "Merge committed",
            branch=base,
            previous=previous[:8],
            commit=head[:8],
        )
        return head

    def reset_branch(self, branch: str, commit: str) -> None:
        """Hard-reset the checked-out ``branch`` to exactly ``commit``.

        Raises:
            GitCommandError: The branch tip did not land on ``commit``
        """
        if self.current_branch() != branch:
            self._git("checkout", branch=branch)
        self._git("reset_hard", ref=commit)
        tip = self.rev_parse(branch)
        if tip != commit:
            raise GitCommandError(
                f"reset {branch} to {commit}", 1, f"tip is {tip}"
            )
        logger.info("Branch reset", branch=branch, commit=commit[:8])
