"""End-to-end sync runs against real upstream/fork repositories."""

import asyncio

import pytest

from forksync.command.reset import ResetCommand
from forksync.command.sync import EXIT_CONFIG, EXIT_FAILURE, EXIT_OK, SyncCommand
from forksync.core.config import State
from forksync.core.errors import ConcurrentRunError
from forksync.core.lock import WorkspaceLock
from forksync.core.models import (
    ConflictRisk,
    FeatureStatus,
    MergeDecision,
    SimulationRisk,
)

pytestmark = pytest.mark.integration

DESIGN = "specs/auto-accept-countdown/design.md"
COMMAND = ".claude/commands/countdown.md"


@pytest.fixture
def make_state(git_repos, tmp_path, monkeypatch, mock_argv):
    """Build a State pointed at the fork with inline protection."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)

    def build(**report):
        return State(config={
            "log_root": str(tmp_path / "state"),
            "logger": {"file": {"enabled": False}},
            "git": {"workdir": str(git_repos.fork)},
            "network": {"max_attempts": 1},
            "protection": {
                "document": None,
                "protected_paths": [
                    "specs/auto-accept-countdown/",
                    COMMAND,
                ],
                "critical_files": [
                    COMMAND,
                    "specs/auto-accept-countdown/countdown.ts",
                ],
                "fork_specific_urls": ["https://github.com/forkowner/timercc"],
                "dependency_paths": ["package.json"],
                "min_fork_url_count": 1,
            },
            "report": {"save": False, "github_output": None, **report},
        })

    return build


def _sync(state, dry_run=False):
    return asyncio.run(SyncCommand(dry_run=dry_run).execute(state))


def test_doc_only_change_auto_merges(git_repos, make_state):
    git_repos.write(git_repos.upstream, "docs/guide.md", "Guide\n\nStep two\n")
    git_repos.commit(git_repos.upstream, "Expand guide")
    before = git_repos.head(git_repos.fork)

    report = _sync(make_state())

    assert report.decision == MergeDecision.AUTO_MERGE
    assert report.fork_status.risk_level == ConflictRisk.LOW
    assert report.feature_integrity.risk_level == ConflictRisk.LOW
    assert report.fork_status.behind == 1
    assert report.outcome.committed
    head = git_repos.head(git_repos.fork)
    assert head != before
    assert report.outcome.merge_commit_ref == head
    assert (git_repos.fork / "docs/guide.md").read_text() == (
        "Guide\n\nStep two\n"
    )


def test_protected_conflict_requests_review(git_repos, make_state):
    git_repos.write(git_repos.upstream, DESIGN, "# Design\n\nCountdown lasts 3s\n")
    git_repos.commit(git_repos.upstream, "Shorter countdown")
    git_repos.write(git_repos.fork, DESIGN, "# Design\n\nCountdown lasts 10s\n")
    git_repos.commit(git_repos.fork, "Longer countdown")
    before = git_repos.head(git_repos.fork)

    report = _sync(make_state())

    conflicts = report.merge_simulation.conflicts
    assert [(c.path, c.severity, c.protected) for c in conflicts] == [
        (DESIGN, ConflictRisk.HIGH, True)
    ]
    assert report.merge_simulation.risk_level == SimulationRisk.REVIEW
    assert report.decision == MergeDecision.CREATE_REVIEW_PR
    assert report.outcome is None
    assert report.action_required
    assert git_repos.head(git_repos.fork) == before


def test_missing_critical_file_requires_manual_work(git_repos, make_state):
    git_repos.remove(git_repos.upstream, COMMAND)
    git_repos.commit(git_repos.upstream, "Remove countdown command")
    before = git_repos.head(git_repos.fork)

    report = _sync(make_state())

    assert not report.feature_integrity.critical_files_intact
    assert report.feature_integrity.missing_files == [COMMAND]
    assert report.decision == MergeDecision.MANUAL_REQUIRED
    assert report.summary.overall_health == "CRITICAL"
    assert git_repos.head(git_repos.fork) == before
    assert (git_repos.fork / COMMAND).exists()


def test_dependency_change_merges_with_validation(git_repos, make_state):
    git_repos.write(git_repos.upstream, "package.json", '{"version": "2.0.0"}\n')
    git_repos.commit(git_repos.upstream, "Bump version")

    report = _sync(make_state())

    assert report.decision == MergeDecision.AUTO_MERGE_WITH_VALIDATION
    assert not report.feature_integrity.dependency_health
    assert report.outcome.committed
    assert report.outcome.validation_passed
    assert not report.outcome.rolled_back


def test_failed_validation_rolls_back(git_repos, make_state, monkeypatch):
    git_repos.write(git_repos.upstream, "package.json", '{"version": "2.0.0"}\n')
    git_repos.commit(git_repos.upstream, "Bump version")
    before = git_repos.head(git_repos.fork)

    class BrokenFeatureChecker:
        def __init__(self, gateway, ref=None):
            pass

        def validate(self, protected_paths, changed_files, **kwargs):
            return FeatureStatus(
                critical_files_intact=False,
                dependencies_healthy=False,
                risk_assessment=ConflictRisk.HIGH,
                missing_files=[COMMAND],
            )

    monkeypatch.setattr(
        "forksync.workflow.nodes.apply_merge.FeatureIntegrityChecker",
        BrokenFeatureChecker,
    )

    report = _sync(make_state())

    assert report.decision == MergeDecision.AUTO_MERGE_WITH_VALIDATION
    assert report.outcome.rolled_back
    assert not report.outcome.committed
    assert git_repos.head(git_repos.fork) == before
    assert any("rolled back" in r for r in report.recommendations)


def test_dry_run_never_merges(git_repos, make_state):
    git_repos.write(git_repos.upstream, "docs/guide.md", "Guide v2\n")
    git_repos.commit(git_repos.upstream, "Update guide")
    before = git_repos.head(git_repos.fork)

    report = _sync(make_state(), dry_run=True)

    assert report.decision == MergeDecision.AUTO_MERGE
    assert report.outcome is None
    assert git_repos.head(git_repos.fork) == before


def test_up_to_date_fork(git_repos, make_state):
    before = git_repos.head(git_repos.fork)

    report = _sync(make_state())

    assert report.fork_status.behind == 0
    assert report.summary.sync_status == "AHEAD"
    assert report.decision == MergeDecision.AUTO_MERGE
    assert not report.outcome.committed
    assert report.outcome.merge_commit_ref is None
    assert git_repos.head(git_repos.fork) == before


def test_rewritten_upstream_history_requires_manual_work(git_repos, make_state):
    git_repos.rewrite_history(
        git_repos.upstream,
        {"README.md": "# TimerCC\n", COMMAND: "Countdown command\n"},
        "Squash history",
    )
    before = git_repos.head(git_repos.fork)
    state = make_state()

    assert asyncio.run(SyncCommand().run_workflow(state)) == EXIT_OK

    report = state.runtime.sync.report
    assert report.merge_simulation.risk_level == SimulationRisk.MANUAL
    assert report.decision == MergeDecision.MANUAL_REQUIRED
    assert report.outcome is None
    assert git_repos.head(git_repos.fork) == before


def test_report_files_are_written(git_repos, make_state, tmp_path):
    output = tmp_path / "github_output"
    reports = tmp_path / "reports"

    report = _sync(make_state(
        save=True, output_dir=str(reports), github_output=str(output)
    ))

    assert len(list(reports.glob("fork-sync-report-*.json"))) == 1
    assert f"report_id={report.report_id}" in output.read_text().splitlines()


def test_concurrent_run_is_refused(git_repos, make_state):
    state = make_state()
    lock = WorkspaceLock(git_repos.fork / ".git" / state.config.lock.filename)

    with lock:
        with pytest.raises(ConcurrentRunError):
            _sync(state)
        assert asyncio.run(SyncCommand().run_workflow(state)) == EXIT_FAILURE


def test_exit_codes(git_repos, make_state, capsys):
    assert asyncio.run(SyncCommand().run_workflow(make_state())) == EXIT_OK
    assert '"report_id"' in capsys.readouterr().out

    state = make_state()
    state.config.protection.critical_files = []
    assert asyncio.run(SyncCommand().run_workflow(state)) == EXIT_CONFIG


def test_unreachable_upstream_is_a_failure(git_repos, make_state):
    state = make_state()
    state.config.git.upstream_url = str(git_repos.root / "missing")

    assert asyncio.run(SyncCommand().run_workflow(state)) == EXIT_FAILURE
    assert state.runtime.sync.report is None


def test_reset_removes_leftover_trials(git_repos, make_state):
    git_repos.git(git_repos.fork, "branch", "forksync/trial/leftover")
    state = make_state()

    code = asyncio.run(ResetCommand().run_workflow(state))

    assert code == EXIT_OK
    assert git_repos.git(
        git_repos.fork, "branch", "--list", "forksync/trial/*"
    ).strip() == ""
