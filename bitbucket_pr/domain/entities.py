from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class User:
    username:     str
    display_name: str | None = None
    uuid:         str | None = None


@dataclass(frozen=True)
class Team:
    """A team (cloud) or project (enterprise) that can own repositories."""
    username:     str
    display_name: str | None = None
    uuid:         str | None = None


@dataclass(frozen=True)
class RemoteRepository:
    """
    Immutable domain entity for a repository hosted on Bitbucket.

    Field names are OURS, not Bitbucket's. Cloud and enterprise payloads
    are both translated into this one shape by the mapper.
    """
    name:        str
    owner:       str
    clone_url:   str | None = None
    scm_type:    str = "git"
    description: str | None = None
    is_private:  bool = True
    full_name:   str | None = None


@dataclass(frozen=True)
class Commit:
    hash:    str
    message: str | None = None
    author:  User | None = None
    date:    datetime | None = None


@dataclass(frozen=True)
class Branch:
    """A branch as the remote sees it."""
    name:        str
    target_hash: str | None
    is_default:  bool = False


@dataclass(frozen=True)
class LocalBranch:
    """
    A branch of the local clone.

    tracked_branch_name is the name of the remote branch this branch
    follows, without the remote prefix ("feature", not "origin/feature").
    Remote-tracking refs themselves have is_remote=True and no tracked name.
    """
    name:                str
    target_hash:         str | None
    is_head:             bool = False
    tracked_branch_name: str | None = None
    is_remote:           bool = False


@dataclass(frozen=True)
class LocalRepository:
    name:      str
    owner:     str
    clone_url: str | None = None
    branches:  tuple[LocalBranch, ...] = ()


@dataclass(frozen=True)
class PullRequest:
    title:               str
    description:         str | None
    source_branch_name:  str
    dest_branch_name:    str
    close_source_branch: bool = False
    id:                  int | None = None
    state:               str | None = None
    author:              User | None = None
    created_on:          datetime | None = None
    updated_on:          datetime | None = None


@dataclass(frozen=True)
class Comment:
    id:         int
    content:    str
    author:     User | None = None
    created_on: datetime | None = None
    parent_id:  int | None = None


@dataclass(frozen=True)
class FileDiff:
    old_path:  str | None
    new_path:  str | None
    additions: int = 0
    deletions: int = 0
    patch:     str = ""


@dataclass(frozen=True)
class PagedResult(Generic[T]):
    """
    One page of a listing. Pages are addressed by number (starting at 1),
    so any page can be fetched again without a continuation token.
    """
    items:     tuple[T, ...]
    page:      int
    page_size: int
    total:     int | None = None
    has_next:  bool = False

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")


@dataclass(frozen=True)
class Credentials:
    login:         str
    password:      str = field(repr=False)
    host:          str | None = None
    is_enterprise: bool = False


@dataclass(frozen=True)
class ConnectionState:
    """
    Process-wide connection record. It never holds the password: the secret
    lives only inside the authenticated client and dies with it on logout.
    """
    is_logged_in:  bool
    username:      str | None = None
    host:          str | None = None
    is_enterprise: bool = False

    NOT_LOGGED: ClassVar[ConnectionState]


ConnectionState.NOT_LOGGED = ConnectionState(is_logged_in=False)
