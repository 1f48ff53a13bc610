"""Unit tests for cdc_wave.core.git_sync.

The controller is exercised against a MagicMock port; SubprocessGitPort is
exercised with ``subprocess.run`` patched, so no git binary is needed.
"""

from __future__ import annotations

import subprocess
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from cdc_wave.core.errors import SynchronizationError
from cdc_wave.core.git_sync import (
    DEFAULT_BASE_BRANCH,
    DEFAULT_BRANCH_PREFIX,
    DEFAULT_LOCAL_DIR,
    GitSyncController,
    SubprocessGitPort,
    SyncConfig,
    SyncState,
    build_branch_name,
    load_sync_config_from_env,
)

_REPO = "git@example.com:platform/argocd.git"


def _controller(
    tmp_path: Path,
    port: MagicMock,
    **config: str,
) -> GitSyncController:
    return GitSyncController(SyncConfig(repo_url=_REPO, **config), tmp_path, port_factory=lambda _p: port)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestLoadSyncConfig:
    """Environment-driven repository settings."""

    def test_none_without_repo_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GIT_REPO_URL", raising=False)
        assert load_sync_config_from_env() is None

    def test_blank_repo_url_is_none(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GIT_REPO_URL", "   ")
        assert load_sync_config_from_env() is None

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GIT_REPO_URL", _REPO)
        for key in ("GIT_BASE_BRANCH", "GIT_TARGET_BRANCH_PREFIX", "GIT_LOCAL_PATH",
                    "GIT_USER_NAME", "GIT_USER_EMAIL"):
            monkeypatch.delenv(key, raising=False)

        cfg = load_sync_config_from_env()

        assert cfg == SyncConfig(repo_url=_REPO)
        assert cfg is not None
        assert cfg.base_branch == DEFAULT_BASE_BRANCH
        assert cfg.branch_prefix == DEFAULT_BRANCH_PREFIX

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GIT_REPO_URL", _REPO)
        monkeypatch.setenv("GIT_BASE_BRANCH", "develop")
        monkeypatch.setenv("GIT_TARGET_BRANCH_PREFIX", "wave/")
        monkeypatch.setenv("GIT_USER_NAME", "Wave Bot")
        cfg = load_sync_config_from_env()
        assert cfg is not None
        assert cfg.base_branch == "develop"
        assert cfg.branch_prefix == "wave/"
        assert cfg.user_name == "Wave Bot"


class TestBuildBranchName:
    """Wave branch naming."""

    def test_suffix_spaces_become_hyphens(self) -> None:
        assert build_branch_name("ingestion-", " wave 3 ") == "ingestion-wave-3"

    def test_timestamp_when_suffix_empty(self) -> None:
        now = datetime(2026, 1, 2, 15, 4, 5)
        assert build_branch_name("ingestion-", "", now) == "ingestion-20260102-150405"
        assert build_branch_name("ingestion-", None, now) == "ingestion-20260102-150405"


class TestResolveLocalPath:
    """Working copy location."""

    def test_default_under_exec_dir(self, tmp_path: Path) -> None:
        ctl = _controller(tmp_path, MagicMock())
        assert ctl.local_path == tmp_path / DEFAULT_LOCAL_DIR

    def test_relative_resolved_against_exec_dir(self, tmp_path: Path) -> None:
        ctl = _controller(tmp_path, MagicMock(), local_path="work/repo")
        assert ctl.local_path == tmp_path / "work" / "repo"

    def test_absolute_kept(self, tmp_path: Path) -> None:
        target = tmp_path / "abs"
        ctl = _controller(Path("/elsewhere"), MagicMock(), local_path=str(target))
        assert ctl.local_path == target


# ---------------------------------------------------------------------------
# prepare()
# ---------------------------------------------------------------------------


class TestPrepare:
    """Clone-or-update then branch."""

    def test_clones_when_missing(self, tmp_path: Path) -> None:
        port = MagicMock()
        ctl = _controller(tmp_path, port)

        branch = ctl.prepare("wave1")

        port.clone.assert_called_once_with(_REPO, DEFAULT_BASE_BRANCH, tmp_path / DEFAULT_LOCAL_DIR)
        port.fetch_all.assert_not_called()
        port.create_or_reset_branch.assert_called_once_with("ingestion-wave1")
        assert branch == "ingestion-wave1"
        assert ctl.state is SyncState.BRANCHED
        assert ctl.branch == branch

    def test_updates_existing_working_copy(self, tmp_path: Path) -> None:
        (tmp_path / DEFAULT_LOCAL_DIR / ".git").mkdir(parents=True)
        port = MagicMock()
        ctl = _controller(tmp_path, port, base_branch="develop")

        ctl.prepare("wave1")

        port.clone.assert_not_called()
        assert port.method_calls[:3] == [
            call.fetch_all(),
            call.checkout("develop"),
            call.pull(ff_only=True),
        ]
        port.create_or_reset_branch.assert_called_once_with("ingestion-wave1")

    def test_refuses_non_empty_non_repo_directory(self, tmp_path: Path) -> None:
        target = tmp_path / DEFAULT_LOCAL_DIR
        target.mkdir()
        (target / "notes.txt").write_text("keep me", encoding="utf-8")
        port = MagicMock()
        ctl = _controller(tmp_path, port)

        with pytest.raises(SynchronizationError, match="not empty"):
            ctl.prepare("wave1")

        port.clone.assert_not_called()
        assert ctl.state is SyncState.UNINITIALIZED

    def test_clone_into_empty_directory_allowed(self, tmp_path: Path) -> None:
        (tmp_path / DEFAULT_LOCAL_DIR).mkdir()
        port = MagicMock()
        _controller(tmp_path, port).prepare("x")
        port.clone.assert_called_once()

    def test_identity_configured_when_set(self, tmp_path: Path) -> None:
        port = MagicMock()
        _controller(tmp_path, port, user_name="Wave Bot", user_email="bot@example.com").prepare("x")
        port.configure_identity.assert_called_once_with("Wave Bot", "bot@example.com")

    def test_identity_skipped_when_unset(self, tmp_path: Path) -> None:
        port = MagicMock()
        _controller(tmp_path, port).prepare("x")
        port.configure_identity.assert_not_called()

    def test_identity_failure_is_not_fatal(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        port = MagicMock()
        port.configure_identity.side_effect = SynchronizationError("config locked")
        ctl = _controller(tmp_path, port, user_name="Wave Bot")

        ctl.prepare("x")

        assert ctl.state is SyncState.BRANCHED
        assert "could not configure commit identity" in capsys.readouterr().out

    def test_failed_pull_propagates(self, tmp_path: Path) -> None:
        (tmp_path / DEFAULT_LOCAL_DIR / ".git").mkdir(parents=True)
        port = MagicMock()
        port.pull.side_effect = SynchronizationError("not a fast-forward")
        ctl = _controller(tmp_path, port)

        with pytest.raises(SynchronizationError, match="fast-forward"):
            ctl.prepare("x")
        port.create_or_reset_branch.assert_not_called()


# ---------------------------------------------------------------------------
# commit_and_push()
# ---------------------------------------------------------------------------


class TestCommitAndPush:
    """Commit only when the working copy has changes."""

    def test_requires_prepare(self, tmp_path: Path) -> None:
        with pytest.raises(SynchronizationError, match="prepare"):
            _controller(tmp_path, MagicMock()).commit_and_push("wave1")

    def test_clean_tree_is_noop(self, tmp_path: Path) -> None:
        port = MagicMock()
        port.is_dirty.return_value = False
        ctl = _controller(tmp_path, port)
        ctl.prepare("wave1")

        result = ctl.commit_and_push("wave1")

        assert result.state is SyncState.NOOP_CLEAN
        assert result.commits == 0
        port.commit_all.assert_not_called()
        port.push_tracking.assert_not_called()

    def test_dirty_tree_committed_and_pushed(self, tmp_path: Path) -> None:
        port = MagicMock()
        port.is_dirty.return_value = True
        ctl = _controller(tmp_path, port)
        ctl.prepare("wave1")

        result = ctl.commit_and_push("wave1")

        port.commit_all.assert_called_once_with("Ingestion wave wave1")
        port.push_tracking.assert_called_once_with("ingestion-wave1")
        assert result.state is SyncState.PUSHED
        assert result.commits == 1
        assert result.branch == "ingestion-wave1"

    def test_push_failure_leaves_committed_state(self, tmp_path: Path) -> None:
        port = MagicMock()
        port.is_dirty.return_value = True
        port.push_tracking.side_effect = SynchronizationError("rejected")
        ctl = _controller(tmp_path, port)
        ctl.prepare("wave1")

        with pytest.raises(SynchronizationError):
            ctl.commit_and_push("wave1")
        assert ctl.state is SyncState.COMMITTED


# ---------------------------------------------------------------------------
# SubprocessGitPort
# ---------------------------------------------------------------------------


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout, stderr=stderr)


class TestSubprocessGitPort:
    """Command lines sent to git."""

    def test_clone_runs_in_parent(self, tmp_path: Path) -> None:
        dest = tmp_path / "repo"
        port = SubprocessGitPort(dest)
        with patch("cdc_wave.core.git_sync.subprocess.run", return_value=_completed()) as run:
            port.clone(_REPO, "main", dest)
        args, kwargs = run.call_args
        assert args[0] == ["git", "clone", "--branch", "main", _REPO, str(dest)]
        assert kwargs["cwd"] == tmp_path

    def test_is_dirty_reads_porcelain(self, tmp_path: Path) -> None:
        port = SubprocessGitPort(tmp_path)
        with patch("cdc_wave.core.git_sync.subprocess.run", return_value=_completed(" M a.yaml\n")):
            assert port.is_dirty()
        with patch("cdc_wave.core.git_sync.subprocess.run", return_value=_completed("\n")):
            assert not port.is_dirty()

    def test_commit_all_adds_then_commits(self, tmp_path: Path) -> None:
        port = SubprocessGitPort(tmp_path)
        with patch("cdc_wave.core.git_sync.subprocess.run", return_value=_completed()) as run:
            port.commit_all("Ingestion wave w1")
        assert [c.args[0] for c in run.call_args_list] == [
            ["git", "add", "."],
            ["git", "commit", "-m", "Ingestion wave w1"],
        ]

    def test_push_and_branch_commands(self, tmp_path: Path) -> None:
        port = SubprocessGitPort(tmp_path)
        with patch("cdc_wave.core.git_sync.subprocess.run", return_value=_completed()) as run:
            port.create_or_reset_branch("ingestion-w1")
            port.push_tracking("ingestion-w1")
            port.pull()
        assert [c.args[0] for c in run.call_args_list] == [
            ["git", "checkout", "-B", "ingestion-w1"],
            ["git", "push", "-u", "origin", "ingestion-w1"],
            ["git", "pull", "--ff-only"],
        ]

    def test_identity_only_sets_given_fields(self, tmp_path: Path) -> None:
        port = SubprocessGitPort(tmp_path)
        with patch("cdc_wave.core.git_sync.subprocess.run", return_value=_completed()) as run:
            port.configure_identity("", "bot@example.com")
        run.assert_called_once()
        assert run.call_args.args[0] == ["git", "config", "user.email", "bot@example.com"]

    def test_non_zero_exit_raises(self, tmp_path: Path) -> None:
        port = SubprocessGitPort(tmp_path)
        failed = _completed(returncode=128, stderr="fatal: not a git repository\n")
        with patch("cdc_wave.core.git_sync.subprocess.run", return_value=failed), \
                pytest.raises(SynchronizationError, match="exit code 128: fatal: not a git repository"):
            port.fetch_all()

    def test_missing_binary_raises(self, tmp_path: Path) -> None:
        port = SubprocessGitPort(tmp_path, git_binary="git-missing")
        with patch("cdc_wave.core.git_sync.subprocess.run", side_effect=FileNotFoundError), \
                pytest.raises(SynchronizationError, match="git executable not found"):
            port.fetch_all()
