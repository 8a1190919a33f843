from __future__ import annotations

import logging
from pathlib import Path

from git import InvalidGitRepositoryError, NoSuchPathError, Repo

from bitbucket_pr.domain.entities import LocalBranch, LocalRepository
from bitbucket_pr.domain.events import ActiveRepositoryChangedEvent
from bitbucket_pr.domain.interfaces import IEventChannel, ILocalRepositoryProvider
from bitbucket_pr.infrastructure.remote_url import parse_remote_url

log = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"


def read_local_repository(path: str | Path, remote_name: str = DEFAULT_REMOTE) -> LocalRepository | None:
    """
    Snapshot a clone with GitPython: local heads (with HEAD and tracking
    info) followed by the remote-tracking refs of `remote_name`.

    Returns None when path is not a git work tree or has no such remote.
    """
    try:
        repo = Repo(str(path), search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        log.debug("%s is not a git repository", path)
        return None

    try:
        if remote_name not in [r.name for r in repo.remotes]:
            log.debug("%s has no remote %r", path, remote_name)
            return None
        remote = repo.remote(remote_name)
        clone_url = next(iter(remote.urls), None)
        parsed = parse_remote_url(clone_url) if clone_url else None
        if parsed is None or not parsed.owner or not parsed.name:
            log.debug("Cannot derive owner/name from %r", clone_url)
            return None

        active = None if repo.head.is_detached else repo.active_branch.name
        branches: list[LocalBranch] = []
        for head in repo.heads:
            # tracking_branch() is None when no upstream is configured
            tracking = head.tracking_branch()
            branches.append(LocalBranch(
                name                = head.name,
                target_hash         = head.commit.hexsha,
                is_head             = head.name == active,
                tracked_branch_name = tracking.remote_head if tracking is not None else None,
                is_remote           = False,
            ))
        for ref in remote.refs:
            if ref.remote_head == "HEAD":
                continue
            branches.append(LocalBranch(
                name        = ref.name,
                target_hash = ref.commit.hexsha,
                is_remote   = True,
            ))

        return LocalRepository(
            name      = parsed.name,
            owner     = parsed.owner,
            clone_url = clone_url,
            branches  = tuple(branches),
        )
    finally:
        repo.close()


class GitLocalRepository(ILocalRepositoryProvider):
    """Active-repository provider backed by a working-tree path on disk."""

    def __init__(self, path: str | Path, remote_name: str = DEFAULT_REMOTE) -> None:
        self._path = Path(path)
        self._remote_name = remote_name

    @property
    def path(self) -> Path:
        return self._path

    def get_active_repository(self) -> LocalRepository | None:
        return read_local_repository(self._path, self._remote_name)


class GitWatcher(ILocalRepositoryProvider):
    """
    Tracks which working tree is active and announces changes.

    set_active_path() switches repositories; refresh() re-reads the current
    one. Both publish ActiveRepositoryChangedEvent only when the snapshot
    differs from the last one published.
    """

    def __init__(self, events: IEventChannel, remote_name: str = DEFAULT_REMOTE) -> None:
        self._events = events
        self._remote_name = remote_name
        self._path: Path | None = None
        self.active_repo: LocalRepository | None = None

    def get_active_repository(self) -> LocalRepository | None:
        return self.active_repo

    def set_active_path(self, path: str | Path | None) -> None:
        self._path = Path(path) if path is not None else None
        self.refresh()

    def refresh(self) -> None:
        snapshot = read_local_repository(self._path, self._remote_name) if self._path else None
        if snapshot == self.active_repo:
            return
        self.active_repo = snapshot
        log.info("Active repository is now %s", f"{snapshot.owner}/{snapshot.name}" if snapshot else None)
        self._events.publish(ActiveRepositoryChangedEvent(snapshot))
