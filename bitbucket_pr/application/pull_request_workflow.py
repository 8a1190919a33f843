from __future__ import annotations

import asyncio
import enum
import logging
from typing import Callable

from bitbucket_pr.domain.entities import Branch, LocalBranch, LocalRepository, PullRequest
from bitbucket_pr.domain.events import ActiveRepositoryChangedEvent
from bitbucket_pr.domain.interfaces import (
    IEventChannel,
    IGitClientService,
    ILocalRepositoryProvider,
    INavigator,
)

log = logging.getLogger(__name__)

NOT_REMOTE_WARNING = "Warning! Selected branch {name} is not a remote branch."
OUT_OF_SYNC_WARNING = "Warning! Selected branch {name} is out of sync with a remote branch."

Listener = Callable[["PullRequestWorkflow"], None]


class WorkflowState(enum.Enum):
    IDLE       = "idle"
    LOADING    = "loading"
    READY      = "ready"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    COMPLETED  = "completed"
    FAILED     = "failed"


def branch_warning(source: LocalBranch | None, remote_branches: list[Branch]) -> str:
    """
    The single warning for the selected source branch, or "".

    "not a remote branch" wins over "out of sync"; a tracked branch that the
    remote no longer has counts as out of sync.
    """
    if source is None:
        return ""
    if not source.tracked_branch_name:
        return NOT_REMOTE_WARNING.format(name=source.name)
    remote = next((b for b in remote_branches if b.name == source.tracked_branch_name), None)
    if remote is None or remote.target_hash != source.target_hash:
        return OUT_OF_SYNC_WARNING.format(name=source.name)
    return ""


def pick_destination(remote_branches: list[Branch], source: LocalBranch | None) -> Branch | None:
    """The default branch, else the first branch named differently from the source."""
    default = next((b for b in remote_branches if b.is_default), None)
    if default is not None:
        return default
    source_name = source.name if source else None
    return next((b for b in remote_branches if b.name != source_name), None)


class PullRequestWorkflow:
    """
    The "create pull request" form as a state machine.

    All mutation happens on the event loop that drives it. A branch load
    and a submission can each be in flight at most once: reload() and
    submit() are ignored while their own operation runs. A change of active
    repository cancels an in-flight load before it can write stale branches.

    Every failure coming from the service is caught here, logged, and
    exposed as error_message; the form then returns to a state the user can
    retry from (IDLE after a failed load, READY after a failed submission).
    """

    def __init__(
        self,
        git_service: IGitClientService,
        local_repositories: ILocalRepositoryProvider,
        navigator: INavigator,
        events: IEventChannel,
    ) -> None:
        self._git_service = git_service
        self._local_repositories = local_repositories
        self._navigator = navigator
        self._events = events

        self.state = WorkflowState.IDLE
        self.current_repo: LocalRepository | None = None
        self.local_branches: list[LocalBranch] = []
        self.remote_branches: list[Branch] = []
        self.source_branch: LocalBranch | None = None
        self.destination_branch: Branch | None = None
        self.title = ""
        self.description = ""
        self.close_source_branch = False
        self.error_message = ""
        self._message = ""
        self.created_pull_request: PullRequest | None = None

        self._listeners: list[Listener] = []
        self._load_task: asyncio.Task | None = None
        self._submitting = False
        self._unsubscribe = events.subscribe(ActiveRepositoryChangedEvent, self._on_active_repository_changed)

    # Observation

    @property
    def message(self) -> str:
        """Current branch warning; read-only, recomputed on source changes."""
        return self._message

    @property
    def is_loading(self) -> bool:
        return self._load_task is not None and not self._load_task.done()

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # Loading

    def _on_active_repository_changed(self, event: ActiveRepositoryChangedEvent) -> None:
        if self.is_loading:
            log.info("Active repository changed, cancelling in-flight branch load")
            self._load_task.cancel()
        self._load_task = asyncio.get_running_loop().create_task(self._load_branches())

    async def reload(self) -> None:
        """Load branches for the active repository unless a load is already running."""
        if self.is_loading:
            log.debug("Branch load already in flight, ignoring reload")
            return
        self._load_task = asyncio.get_running_loop().create_task(self._load_branches())
        try:
            await self._load_task
        except asyncio.CancelledError:
            # re-raise only if we were cancelled, not the load we awaited
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            log.debug("Branch load superseded")

    def _clear_selection(self) -> None:
        self.current_repo = None
        self.local_branches = []
        self.remote_branches = []
        self.source_branch = None
        self.destination_branch = None
        self._message = ""

    async def _load_branches(self) -> None:
        self.state = WorkflowState.LOADING
        self.error_message = ""
        # branches of the previous repository must not survive into this one
        self._clear_selection()
        self._changed()
        try:
            repo = await asyncio.to_thread(self._local_repositories.get_active_repository)
            if repo is None:
                raise LookupError("No active repository")
            remote_branches = await self._git_service.get_branches(repo.name, repo.owner)
        except asyncio.CancelledError:
            log.debug("Branch load cancelled before completion")
            raise
        except Exception as exc:
            log.error("Loading branches failed: %s", exc, exc_info=True)
            self.error_message = str(exc)
            self.state = WorkflowState.IDLE
            self._changed()
            return

        self.current_repo = repo
        self.local_branches = [b for b in repo.branches if not b.is_remote]
        self.remote_branches = sorted(remote_branches, key=lambda b: b.name)
        log.info(
            "Loaded %d local / %d remote branches for %s/%s",
            len(self.local_branches), len(self.remote_branches), repo.owner, repo.name,
        )

        self.state = WorkflowState.READY
        source = next((b for b in self.local_branches if b.is_head), None)
        self.destination_branch = pick_destination(self.remote_branches, source)
        self.set_source_branch(source)

    # Form fields

    def set_source_branch(self, branch: LocalBranch | None) -> None:
        self.source_branch = branch
        self._validate()
        self._changed()

    def set_destination_branch(self, branch: Branch | None) -> None:
        self.destination_branch = branch
        self._changed()

    def set_title(self, title: str) -> None:
        self.title = title or ""
        self._changed()

    def set_description(self, description: str) -> None:
        self.description = description or ""
        self._changed()

    def set_close_source_branch(self, close_source_branch: bool) -> None:
        self.close_source_branch = bool(close_source_branch)
        self._changed()

    def _validate(self) -> None:
        if self.state is not WorkflowState.READY:
            self._message = branch_warning(self.source_branch, self.remote_branches)
            return
        self.state = WorkflowState.VALIDATING
        self._message = branch_warning(self.source_branch, self.remote_branches)
        self.state = WorkflowState.READY

    def can_submit(self) -> bool:
        source = self.source_branch
        destination = self.destination_branch
        return (
            self.state is WorkflowState.READY
            and not self.is_loading
            and bool(self.title)
            and source is not None
            and bool(source.name)
            and bool(source.tracked_branch_name)
            and destination is not None
            and bool(destination.name)
            # never into the branch the source itself tracks
            and destination.name != source.tracked_branch_name
        )

    # Submission

    async def submit(self) -> WorkflowState:
        """
        Create the pull request.

        Returns COMPLETED on success, FAILED when branches are not loaded,
        the form is invalid or the provider refused it (the form is then
        READY again), and SUBMITTING when another submission is still running.
        """
        if self._submitting:
            log.debug("Submission already in flight, ignoring")
            return WorkflowState.SUBMITTING
        if self.state is not WorkflowState.READY or self.is_loading:
            log.warning("Submit requested while the form is %s, ignoring", self.state.value)
            self.error_message = self.error_message or "Branches are not loaded"
            self._changed()
            return WorkflowState.FAILED
        if not self.can_submit() or self.current_repo is None:
            self.error_message = "Pull request form is incomplete"
            self._changed()
            return WorkflowState.FAILED

        pull_request = PullRequest(
            title               = self.title,
            description         = self.description,
            source_branch_name  = self.source_branch.tracked_branch_name,
            dest_branch_name    = self.destination_branch.name,
            close_source_branch = self.close_source_branch,
        )
        repo = self.current_repo

        self._submitting = True
        self.state = WorkflowState.SUBMITTING
        self.error_message = ""
        self._changed()
        try:
            self.created_pull_request = await self._git_service.create_pull_request(pull_request, repo.name, repo.owner)
        except asyncio.CancelledError:
            log.info("Pull request submission cancelled")
            if self.state is WorkflowState.SUBMITTING:
                self.state = WorkflowState.READY
                self._changed()
            raise
        except Exception as exc:
            log.error("Creating pull request failed: %s", exc, exc_info=True)
            self.error_message = str(exc)
            self.state = WorkflowState.FAILED
            self._changed()
            self.state = WorkflowState.READY
            self._changed()
            return WorkflowState.FAILED
        finally:
            self._submitting = False

        self.state = WorkflowState.COMPLETED
        self._changed()
        self._navigator.navigate_back(True)
        return WorkflowState.COMPLETED

    def close(self) -> None:
        """Stop listening for repository changes and cancel any pending load."""
        self._unsubscribe()
        if self.is_loading:
            self._load_task.cancel()
        self._listeners.clear()
