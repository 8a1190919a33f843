"""
Domain Layer: Interfaces (Abstract Contracts)
-----------------------------------------------
The application layer depends on these, never on the concrete Bitbucket,
GitPython or event-bus classes. Tests swap any of them for a fake without
touching the workflow.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Callable

from .entities import (
    Branch,
    Comment,
    Commit,
    ConnectionState,
    Credentials,
    FileDiff,
    LocalRepository,
    PagedResult,
    PullRequest,
    RemoteRepository,
    Team,
    User,
)


class ILocalRepositoryProvider(ABC):
    """Reads the local clone the user currently works in."""

    @abstractmethod
    def get_active_repository(self) -> LocalRepository | None:
        """Return the active repository with local and remote-tracking branches, or None."""
        ...


class IEventChannel(ABC):
    """
    In-process publish/subscribe. Delivery is at-least-once; there is no
    ordering guarantee across different event types.
    """

    @abstractmethod
    def publish(self, event: Any) -> None:
        ...

    @abstractmethod
    def subscribe(self, event_type: type, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Register handler for event_type. Returns a callable that unsubscribes it."""
        ...


class INavigator(ABC):

    @abstractmethod
    def navigate_back(self, success: bool) -> None:
        ...


class ICredentialSession(ABC):
    """Login/logout lifecycle around the authenticated client handle."""

    @abstractmethod
    async def login(self, credentials: Credentials) -> ConnectionState:
        ...

    @abstractmethod
    def logout(self) -> None:
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @property
    @abstractmethod
    def connection_state(self) -> ConnectionState:
        ...


class IGitClientService(ABC):
    """
    Contract of the hosting-provider facade. Every method needs an active
    session and returns domain entities only.
    """

    @abstractmethod
    async def get_user_repositories(self) -> list[RemoteRepository]:
        ...

    @abstractmethod
    async def get_all_repositories(self) -> list[RemoteRepository]:
        ...

    @abstractmethod
    async def get_teams(self) -> list[Team]:
        ...

    @abstractmethod
    async def get_branches(self, repo_name: str, owner: str) -> list[Branch]:
        ...

    @abstractmethod
    async def get_commits_range(self, repo_name: str, owner: str, from_branch: Branch, to_branch: Branch) -> list[Commit]:
        ...

    @abstractmethod
    async def get_commit_by_id(self, repo_name: str, owner: str, commit_hash: str) -> Commit:
        ...

    @abstractmethod
    async def get_pull_requests(self, repo_name: str, owner: str, limit: int = 20, page: int = 1) -> PagedResult[PullRequest]:
        ...

    @abstractmethod
    async def get_all_pull_requests(self, repo_name: str, owner: str) -> list[PullRequest]:
        ...

    @abstractmethod
    async def get_pull_request(self, repo_name: str, owner: str, pull_request_id: int) -> PullRequest:
        ...

    @abstractmethod
    async def get_pull_request_for_branches(self, repo_name: str, owner: str, source_branch: str, dest_branch: str) -> PullRequest | None:
        ...

    @abstractmethod
    async def get_pull_requests_authors(self, repo_name: str, owner: str) -> list[User]:
        ...

    @abstractmethod
    async def create_pull_request(self, pull_request: PullRequest, repo_name: str, owner: str) -> PullRequest:
        ...

    @abstractmethod
    async def approve_pull_request(self, repo_name: str, owner: str, pull_request_id: int) -> bool:
        ...

    @abstractmethod
    async def disapprove_pull_request(self, repo_name: str, owner: str, pull_request_id: int) -> None:
        ...

    @abstractmethod
    async def get_pull_request_diff(self, repo_name: str, owner: str, pull_request_id: int) -> list[FileDiff]:
        ...

    @abstractmethod
    async def get_pull_request_commits(self, repo_name: str, owner: str, pull_request_id: int) -> list[Commit]:
        ...

    @abstractmethod
    async def get_pull_request_comments(self, repo_name: str, owner: str, pull_request_id: int) -> list[Comment]:
        ...

    @abstractmethod
    async def get_repository_users(self, repo_name: str, owner: str, filter: str | None = None) -> list[User]:
        ...

    @abstractmethod
    async def create_repository(self, repository: RemoteRepository) -> RemoteRepository:
        ...

    @abstractmethod
    def is_origin_repo(self, repository: RemoteRepository | None) -> bool:
        ...
