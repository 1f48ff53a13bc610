"""Git synchronization of generated manifests into the deployment repository.

The controller drives one local working copy through a fixed sequence::

    UNINITIALIZED ─┬─ clone ──────────┬─ BRANCHED ─┬─ commit ─ COMMITTED ─ push ─ PUSHED
                   └─ fetch/pull ─────┘            └─ clean tree ─ NOOP_CLEAN

``prepare()`` runs before any manifest is written: it clones or fast-forwards
the base branch and (re)creates the wave branch from it, so a rerun of the
same wave always starts from a clean base. ``commit_and_push()`` runs after
the write phase and skips both commit and push when nothing changed.

Version control is reached through :class:`VersionControlPort`; the default
binding :class:`SubprocessGitPort` shells out to the ``git`` binary.

Environment variables (see :func:`load_sync_config_from_env`):
    GIT_REPO_URL               Remote URL; unset disables synchronization.
    GIT_BASE_BRANCH            Base branch (default: main).
    GIT_TARGET_BRANCH_PREFIX   Wave branch prefix (default: ingestion-).
    GIT_LOCAL_PATH             Working copy path, absolute or relative to the
                               execution directory (default: argocd-repo).
    GIT_USER_NAME / GIT_USER_EMAIL  Commit identity (optional).
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol

from cdc_wave.core.errors import SynchronizationError
from cdc_wave.helpers.helpers_logging import (
    print_info,
    print_success,
    print_warning,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_BASE_BRANCH = "main"
DEFAULT_BRANCH_PREFIX = "ingestion-"
DEFAULT_LOCAL_DIR = "argocd-repo"
BRANCH_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
COMMIT_MESSAGE_FORMAT = "Ingestion wave {group}"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncConfig:
    """Settings of the deployment repository.

    Attributes:
        repo_url: Remote repository URL.
        base_branch: Branch every wave branch is created from.
        branch_prefix: Prefix of wave branch names.
        local_path: Working copy location ('' means the default).
        user_name: Commit author name ('' leaves git config untouched).
        user_email: Commit author email ('' leaves git config untouched).
    """

    repo_url: str
    base_branch: str = DEFAULT_BASE_BRANCH
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    local_path: str = ""
    user_name: str = ""
    user_email: str = ""


class SyncState(str, Enum):
    """Lifecycle of the working copy during one wave."""

    UNINITIALIZED = "uninitialized"
    CLONED = "cloned"
    UP_TO_DATE = "up_to_date"
    BRANCHED = "branched"
    COMMITTED = "committed"
    PUSHED = "pushed"
    NOOP_CLEAN = "noop_clean"


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a synchronization.

    Attributes:
        local_path: Resolved working copy path.
        branch: Wave branch name.
        state: Terminal state (PUSHED or NOOP_CLEAN).
        commits: Number of commits created (0 or 1).
    """

    local_path: Path
    branch: str
    state: SyncState
    commits: int = 0


def load_sync_config_from_env() -> SyncConfig | None:
    """Read repository settings from the environment.

    Returns:
        The configuration, or None when ``GIT_REPO_URL`` is unset or blank.
    """
    repo_url = os.getenv("GIT_REPO_URL", "").strip()
    if not repo_url:
        return None

    return SyncConfig(
        repo_url=repo_url,
        base_branch=os.getenv("GIT_BASE_BRANCH", "").strip() or DEFAULT_BASE_BRANCH,
        branch_prefix=os.getenv("GIT_TARGET_BRANCH_PREFIX", "").strip() or DEFAULT_BRANCH_PREFIX,
        local_path=os.getenv("GIT_LOCAL_PATH", "").strip(),
        user_name=os.getenv("GIT_USER_NAME", "").strip(),
        user_email=os.getenv("GIT_USER_EMAIL", "").strip(),
    )


# ---------------------------------------------------------------------------
# Version-control port
# ---------------------------------------------------------------------------


class VersionControlPort(Protocol):
    """Operations the controller needs from a version-control backend.

    Implementations raise :class:`SynchronizationError` on failure.
    """

    def clone(self, url: str, branch: str, destination: Path) -> None:
        ...

    def fetch_all(self) -> None:
        ...

    def checkout(self, ref: str) -> None:
        ...

    def pull(self, *, ff_only: bool = True) -> None:
        ...

    def configure_identity(self, name: str, email: str) -> None:
        ...

    def create_or_reset_branch(self, name: str) -> None:
        ...

    def is_dirty(self) -> bool:
        ...

    def commit_all(self, message: str) -> None:
        ...

    def push_tracking(self, branch: str) -> None:
        ...


class SubprocessGitPort:
    """Version-control port backed by the ``git`` command line."""

    def __init__(self, work_dir: Path, git_binary: str = "git") -> None:
        self.work_dir = work_dir
        self.git_binary = git_binary

    def _run(self, args: list[str], cwd: Path | None = None) -> str:
        cmd = [self.git_binary, *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd or self.work_dir,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SynchronizationError(
                f"git executable not found: {self.git_binary}",
            ) from exc

        if result.returncode != 0:
            raise SynchronizationError(
                f"'{' '.join(cmd)}' failed with exit code {result.returncode}: "
                + result.stderr.strip(),
                path=cwd or self.work_dir,
            )
        return result.stdout

    def clone(self, url: str, branch: str, destination: Path) -> None:
        self._run(["clone", "--branch", branch, url, str(destination)], cwd=destination.parent)

    def fetch_all(self) -> None:
        self._run(["fetch", "--all"])

    def checkout(self, ref: str) -> None:
        self._run(["checkout", ref])

    def pull(self, *, ff_only: bool = True) -> None:
        self._run(["pull", "--ff-only"] if ff_only else ["pull"])

    def configure_identity(self, name: str, email: str) -> None:
        if name:
            self._run(["config", "user.name", name])
        if email:
            self._run(["config", "user.email", email])

    def create_or_reset_branch(self, name: str) -> None:
        self._run(["checkout", "-B", name])

    def is_dirty(self) -> bool:
        return self._run(["status", "--porcelain"]).strip() != ""

    def commit_all(self, message: str) -> None:
        self._run(["add", "."])
        self._run(["commit", "-m", message])

    def push_tracking(self, branch: str) -> None:
        self._run(["push", "-u", "origin", branch])


PortFactory = Callable[[Path], VersionControlPort]


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


def build_branch_name(prefix: str, suffix: str | None, now: datetime | None = None) -> str:
    """Compose the wave branch name.

    Example:
        >>> build_branch_name("ingestion-", "wave 3")
        'ingestion-wave-3'
    """
    clean = (suffix or "").strip()
    if not clean:
        clean = (now or datetime.now()).strftime(BRANCH_TIMESTAMP_FORMAT)
    return prefix + clean.replace(" ", "-")


class GitSyncController:
    """Owns the working copy of the deployment repository for one wave.

    Attributes:
        config: Repository settings.
        exec_dir: Directory relative local paths are resolved against.
        state: Current lifecycle state.
        branch: Wave branch, once ``prepare()`` succeeded.
    """

    def __init__(
        self,
        config: SyncConfig,
        exec_dir: Path,
        port_factory: PortFactory = SubprocessGitPort,
    ) -> None:
        self.config = config
        self.exec_dir = exec_dir
        self.state = SyncState.UNINITIALIZED
        self.branch: str | None = None
        self.local_path = self.resolve_local_path()
        self._port = port_factory(self.local_path)

    def resolve_local_path(self) -> Path:
        """Resolve the working copy path from the configuration."""
        raw = self.config.local_path.strip()
        if not raw:
            return self.exec_dir / DEFAULT_LOCAL_DIR
        path = Path(raw)
        return path if path.is_absolute() else self.exec_dir / path

    def prepare(self, branch_suffix: str | None = None, now: datetime | None = None) -> str:
        """Bring the working copy up to date and check out the wave branch.

        Args:
            branch_suffix: Branch name suffix; a timestamp when empty.
            now: Clock override for the timestamp suffix.

        Returns:
            The wave branch name.

        Raises:
            SynchronizationError: If any clone/update/branch step fails.
        """
        if (self.local_path / ".git").exists():
            self._update()
        else:
            self._clone()

        self._configure_identity()

        branch = build_branch_name(self.config.branch_prefix, branch_suffix, now)
        self._port.checkout(self.config.base_branch)
        self._port.create_or_reset_branch(branch)
        self.branch = branch
        self.state = SyncState.BRANCHED
        print_info(f"GitOps: working on branch {branch} (from {self.config.base_branch})")
        return branch

    def _clone(self) -> None:
        if self.local_path.is_dir() and any(self.local_path.iterdir()):
            raise SynchronizationError(
                "directory exists and is not empty; refusing to clone into it",
                path=self.local_path,
            )
        self.local_path.parent.mkdir(parents=True, exist_ok=True)
        print_info(f"GitOps: cloning {self.config.repo_url} ({self.config.base_branch}) into {self.local_path}")
        self._port.clone(self.config.repo_url, self.config.base_branch, self.local_path)
        self.state = SyncState.CLONED

    def _update(self) -> None:
        print_info(f"GitOps: updating {self.local_path} from {self.config.base_branch}")
        self._port.fetch_all()
        self._port.checkout(self.config.base_branch)
        self._port.pull(ff_only=True)
        self.state = SyncState.UP_TO_DATE

    def _configure_identity(self) -> None:
        name = self.config.user_name.strip()
        email = self.config.user_email.strip()
        if not name and not email:
            return
        try:
            self._port.configure_identity(name, email)
        except SynchronizationError as exc:
            print_warning(f"GitOps: could not configure commit identity: {exc}")

    def commit_and_push(self, group: str) -> SyncResult:
        """Commit every pending change and push the wave branch.

        Args:
            group: Wave group name used in the commit message.

        Returns:
            PUSHED with one commit, or NOOP_CLEAN with none.

        Raises:
            SynchronizationError: If called before ``prepare()`` or a git step fails.
        """
        if self.state is not SyncState.BRANCHED or self.branch is None:
            raise SynchronizationError(
                f"commit requested in state {self.state.value}; prepare() must run first",
                path=self.local_path,
            )

        if not self._port.is_dirty():
            self.state = SyncState.NOOP_CLEAN
            print_info(f"GitOps: no modified files in {self.local_path}, nothing to commit")
            return SyncResult(self.local_path, self.branch, self.state, commits=0)

        self._port.commit_all(COMMIT_MESSAGE_FORMAT.format(group=group))
        self.state = SyncState.COMMITTED
        self._port.push_tracking(self.branch)
        self.state = SyncState.PUSHED
        print_success(f"GitOps: pushed branch {self.branch}")
        return SyncResult(self.local_path, self.branch, self.state, commits=1)
