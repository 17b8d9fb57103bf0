"""Pytest configuration and fixtures for forksync tests."""

import shlex
import shutil
import sys
import tempfile
from pathlib import Path

import pytest
import yaml

from forksync.core.log import ConsoleSink, setup_logger
from forksync.core.runner import Runner
from forksync.git.gateway import RepositoryGateway
from forksync.protection.registry import ProtectedPathSet

DEFAULTS = (
    Path(__file__).parent.parent / "src" / "forksync" / "defaults"
    / "default.yaml"
)

FORK_URL = "https://github.com/forkowner/timercc"


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Console-only logging for test runs; nothing leaves the machine."""
    test_log_root = Path(tempfile.gettempdir()) / "forksync-tests"
    setup_logger(
        log_root=test_log_root,
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture
def mock_argv():
    """Save and restore sys.argv."""
    original = sys.argv.copy()
    sys.argv = ["forksync"]
    yield
    sys.argv = original


@pytest.fixture(scope="session")
def git_commands():
    """Git command templates shipped in the package defaults."""
    with open(DEFAULTS, encoding="utf-8") as f:
        return yaml.safe_load(f)["config"]["commands"]["git"]


@pytest.fixture
def protected_paths():
    return ProtectedPathSet(
        patterns=[
            "specs/auto-accept-countdown/",
            ".claude/commands/countdown.md",
        ],
        critical_files=[
            ".claude/commands/countdown.md",
            "specs/auto-accept-countdown/countdown.ts",
        ],
        fork_specific_urls=[{"pattern": FORK_URL}],
        dependency_paths=["package.json"],
        min_fork_url_count=1,
    )


class GitRepos:
    """An upstream repository and a fork cloned from it.

    Both share an initial commit; the fork then adds its feature on
    top. Tests push further commits to either side with write(),
    remove() and commit().
    """

    def __init__(self, root: Path):
        self.root = root
        self.upstream = root / "upstream"
        self.fork = root / "fork"
        self.runner = Runner()

    def git(self, repo: Path, *args: str) -> str:
        command = "git " + " ".join(shlex.quote(a) for a in args)
        return self.runner.execute(command, cwd=repo).stdout

    def write(self, repo: Path, path: str, content: str) -> None:
        target = repo / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def remove(self, repo: Path, path: str) -> None:
        (repo / path).unlink()

    def commit(self, repo: Path, message: str) -> str:
        self.git(repo, "add", "-A")
        self.git(repo, "commit", "-q", "-m", message)
        return self.head(repo)

    def head(self, repo: Path, ref: str = "main") -> str:
        return self.git(repo, "rev-parse", ref).strip()

    def rewrite_history(
        self, repo: Path, files: dict[str, str], message: str
    ) -> str:
        """Replace ``main`` with a single root commit holding ``files``."""
        self.git(repo, "checkout", "-q", "--orphan", "rewrite")
        self.git(repo, "rm", "-rq", "--cached", ".")
        for path in self.git(repo, "ls-files", "--others").split():
            self.remove(repo, path)
        for path, content in files.items():
            self.write(repo, path, content)
        self.commit(repo, message)
        self.git(repo, "branch", "-M", "main")
        return self.head(repo)

    def _configure(self, repo: Path) -> None:
        self.git(repo, "config", "user.name", "Fork Bot")
        self.git(repo, "config", "user.email", "bot@example.com")
        self.git(repo, "config", "commit.gpgsign", "false")

    def setup(self) -> "GitRepos":
        self.upstream.mkdir(parents=True)
        self.git(self.upstream, "init", "-q", "-b", "main")
        self._configure(self.upstream)
        self.write(self.upstream, "README.md", "# TimerCC\n")
        self.write(self.upstream, "docs/guide.md", "Guide\n\nStep one\n")
        self.write(self.upstream, "package.json", '{"version": "1.0.0"}\n')
        self.write(self.upstream, "src/app.py", "print('hello')\n")
        self.write(
            self.upstream,
            "specs/auto-accept-countdown/design.md",
            "# Design\n\nCountdown lasts 5 seconds\n",
        )
        self.write(
            self.upstream, ".claude/commands/countdown.md", "Countdown command\n"
        )
        self.commit(self.upstream, "Initial commit")

        self.git(self.root, "clone", "-q", str(self.upstream), str(self.fork))
        self._configure(self.fork)
        self.git(self.fork, "remote", "rename", "origin", "upstream")
        self.write(
            self.fork,
            "specs/auto-accept-countdown/countdown.ts",
            f"// Source: {FORK_URL}\nexport const seconds = 5;\n",
        )
        self.commit(self.fork, "Add auto-accept countdown feature")
        return self


@pytest.fixture
def git_repos(tmp_path):
    """Fresh upstream + fork pair built with real git."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    return GitRepos(tmp_path).setup()


@pytest.fixture
def gateway(git_repos, git_commands):
    """RepositoryGateway over the fork working copy."""
    return RepositoryGateway(
        workdir=git_repos.fork,
        commands=git_commands,
        primary_branch="main",
        network_timeout=30,
    )
