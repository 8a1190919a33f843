"""
Anti-corruption layer between Bitbucket payloads and domain entities.

Bitbucket Cloud sends:                 Enterprise sends:             We store as:
  "full_name" / "slug"                   "slug" + "project.key"        RemoteRepository.name/owner
  "target.hash"                          "latestCommit"                Branch.target_hash
  "source.branch.name"                   "fromRef.displayId"           PullRequest.source_branch_name
  ISO-8601 strings                       epoch milliseconds            aware datetime

Every mapper is a pure function of its input. Mapping is wire -> domain;
only repository and pull-request creation have a domain -> wire direction.
If Bitbucket renames a field, fix it HERE only.
"""

from __future__ import annotations

import functools
import re
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from bitbucket_pr.domain.entities import (
    Branch,
    Comment,
    Commit,
    FileDiff,
    PagedResult,
    PullRequest,
    RemoteRepository,
    Team,
    User,
)
from bitbucket_pr.domain.exceptions import MappingError
from bitbucket_pr.infrastructure.endpoints import ApiVariant

T = TypeVar("T")

_DIFF_HEADER = re.compile(r"^diff --git a/(?P<old>.+?) b/(?P<new>.+)$")


def _mapped(entity: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Turn any shape error raised while mapping into MappingError."""
    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return fn(*args, **kwargs)
            except MappingError:
                raise
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise MappingError(f"Malformed {entity} payload: {exc!r}") from exc
        return wrapper
    return decorator


def parse_datetime(value: str | None) -> datetime | None:
    """Convert an ISO datetime string to an aware datetime."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def from_epoch_millis(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _clone_href(raw: dict, preferred: str) -> str | None:
    for link in (raw.get("links") or {}).get("clone") or []:
        if link.get("name") == preferred:
            return link.get("href")
    return None


@_mapped("diff")
def parse_unified_diff(text: str) -> list[FileDiff]:
    """Split a git-style unified diff into one FileDiff per file."""
    if not text or not text.strip():
        return []

    chunks: list[list[str]] = []
    for line in text.splitlines():
        if line.startswith("diff --git ") or not chunks:
            chunks.append([])
        chunks[-1].append(line)

    diffs = []
    for lines in chunks:
        old_path = new_path = None
        header = _DIFF_HEADER.match(lines[0])
        if header:
            old_path, new_path = header.group("old"), header.group("new")

        additions = deletions = 0
        in_hunk = False
        for line in lines:
            if line.startswith("@@"):
                in_hunk = True
            elif not in_hunk and line.startswith("--- "):
                old_path = _diff_path(line[4:])
            elif not in_hunk and line.startswith("+++ "):
                new_path = _diff_path(line[4:])
            elif in_hunk and line.startswith("+"):
                additions += 1
            elif in_hunk and line.startswith("-"):
                deletions += 1

        diffs.append(FileDiff(
            old_path  = old_path,
            new_path  = new_path,
            additions = additions,
            deletions = deletions,
            patch     = "\n".join(lines),
        ))
    return diffs


def _diff_path(value: str) -> str | None:
    value = value.split("\t")[0].strip()
    if value == "/dev/null":
        return None
    if value[:2] in ("a/", "b/"):
        return value[2:]
    return value


class CloudMapper:
    """Bitbucket Cloud /2.0 payloads."""

    @staticmethod
    @_mapped("user")
    def to_user(raw: dict) -> User:
        return User(
            username     = raw.get("username") or raw.get("nickname") or raw["display_name"],
            display_name = raw.get("display_name"),
            uuid         = raw.get("uuid"),
        )

    @staticmethod
    @_mapped("team")
    def to_team(raw: dict) -> Team:
        return Team(
            username     = raw["username"],
            display_name = raw.get("display_name"),
            uuid         = raw.get("uuid"),
        )

    @staticmethod
    @_mapped("repository")
    def to_repository(raw: dict) -> RemoteRepository:
        full_name = raw["full_name"]
        owner, _, slug = full_name.partition("/")
        return RemoteRepository(
            name        = raw.get("slug") or slug or raw["name"],
            owner       = owner,
            clone_url   = _clone_href(raw, "https"),
            scm_type    = raw["scm"],
            description = raw.get("description"),
            is_private  = bool(raw.get("is_private", True)),
            full_name   = full_name,
        )

    @staticmethod
    def default_branch_name(raw_repository: dict) -> str | None:
        return ((raw_repository or {}).get("mainbranch") or {}).get("name")

    @staticmethod
    @_mapped("branch")
    def to_branch(raw: dict, default_branch: str | None = None) -> Branch:
        name = raw["name"]
        return Branch(
            name        = name,
            target_hash = (raw.get("target") or {}).get("hash"),
            is_default  = default_branch is not None and name == default_branch,
        )

    @staticmethod
    @_mapped("commit")
    def to_commit(raw: dict) -> Commit:
        author = raw.get("author") or {}
        user = None
        if author.get("user"):
            user = CloudMapper.to_user(author["user"])
        elif author.get("raw"):
            user = User(username=author["raw"])
        return Commit(
            hash    = raw["hash"],
            message = raw.get("message"),
            author  = user,
            date    = parse_datetime(raw.get("date")),
        )

    @staticmethod
    @_mapped("pull request")
    def to_pull_request(raw: dict) -> PullRequest:
        return PullRequest(
            title               = raw["title"],
            description         = raw.get("description") or "",
            source_branch_name  = raw["source"]["branch"]["name"],
            dest_branch_name    = raw["destination"]["branch"]["name"],
            close_source_branch = bool(raw.get("close_source_branch", False)),
            id                  = raw.get("id"),
            state               = raw.get("state"),
            author              = CloudMapper.to_user(raw["author"]) if raw.get("author") else None,
            created_on          = parse_datetime(raw.get("created_on")),
            updated_on          = parse_datetime(raw.get("updated_on")),
        )

    @staticmethod
    @_mapped("comment")
    def to_comment(raw: dict) -> Comment:
        return Comment(
            id         = raw["id"],
            content    = (raw.get("content") or {}).get("raw") or "",
            author     = CloudMapper.to_user(raw["user"]) if raw.get("user") else None,
            created_on = parse_datetime(raw.get("created_on")),
            parent_id  = (raw.get("parent") or {}).get("id"),
        )

    @staticmethod
    @_mapped("comment list")
    def to_comments(values: list[dict]) -> list[Comment]:
        return [CloudMapper.to_comment(v) for v in values if not v.get("deleted")]

    @staticmethod
    @_mapped("repository user")
    def to_repository_user(raw: dict) -> User:
        # workspace membership wraps the user
        return CloudMapper.to_user(raw["user"] if "user" in raw else raw)

    @staticmethod
    @_mapped("participant")
    def to_approval(raw: dict) -> bool:
        return raw.get("approved") is True

    @staticmethod
    @_mapped("page")
    def to_page(raw: dict, item_mapper: Callable[[dict], T], page: int, limit: int) -> PagedResult[T]:
        return PagedResult(
            items     = tuple(item_mapper(v) for v in raw["values"]),
            page      = int(raw.get("page", page)),
            page_size = int(raw.get("pagelen", limit)),
            total     = raw.get("size"),
            has_next  = bool(raw.get("next")),
        )

    @staticmethod
    def to_repository_body(repository: RemoteRepository) -> dict:
        return {
            "name":        repository.name,
            "scm":         repository.scm_type,
            "is_private":  repository.is_private,
            "description": repository.description or "",
        }

    @staticmethod
    def to_pull_request_body(pull_request: PullRequest, owner: str, repo_name: str) -> dict:
        return {
            "title":               pull_request.title,
            "description":         pull_request.description or "",
            "source":              {"branch": {"name": pull_request.source_branch_name}},
            "destination":         {"branch": {"name": pull_request.dest_branch_name}},
            "close_source_branch": pull_request.close_source_branch,
        }


class EnterpriseMapper:
    """Bitbucket Server / Data Center /rest/api/1.0 payloads."""

    @staticmethod
    @_mapped("user")
    def to_user(raw: dict) -> User:
        return User(
            username     = raw.get("slug") or raw["name"],
            display_name = raw.get("displayName"),
            uuid         = str(raw["id"]) if raw.get("id") is not None else None,
        )

    @staticmethod
    @_mapped("project")
    def to_team(raw: dict) -> Team:
        return Team(
            username     = raw["key"],
            display_name = raw.get("name"),
            uuid         = str(raw["id"]) if raw.get("id") is not None else None,
        )

    @staticmethod
    @_mapped("repository")
    def to_repository(raw: dict) -> RemoteRepository:
        slug = raw["slug"]
        owner = raw["project"]["key"]
        return RemoteRepository(
            name        = slug,
            owner       = owner,
            clone_url   = _clone_href(raw, "http"),
            scm_type    = raw["scmId"],
            description = raw.get("description"),
            is_private  = not raw.get("public", False),
            full_name   = f"{owner}/{slug}",
        )

    @staticmethod
    def default_branch_name(raw_repository: dict) -> str | None:
        return None

    @staticmethod
    @_mapped("branch")
    def to_branch(raw: dict, default_branch: str | None = None) -> Branch:
        return Branch(
            name        = raw["displayId"],
            target_hash = raw.get("latestCommit"),
            is_default  = bool(raw.get("isDefault", False)),
        )

    @staticmethod
    @_mapped("commit")
    def to_commit(raw: dict) -> Commit:
        author = raw.get("author")
        return Commit(
            hash    = raw["id"],
            message = raw.get("message"),
            author  = EnterpriseMapper.to_user(author) if author else None,
            date    = from_epoch_millis(raw.get("authorTimestamp")),
        )

    @staticmethod
    @_mapped("pull request")
    def to_pull_request(raw: dict) -> PullRequest:
        author = (raw.get("author") or {}).get("user")
        return PullRequest(
            title              = raw["title"],
            description        = raw.get("description") or "",
            source_branch_name = raw["fromRef"]["displayId"],
            dest_branch_name   = raw["toRef"]["displayId"],
            id                 = raw.get("id"),
            state              = raw.get("state"),
            author             = EnterpriseMapper.to_user(author) if author else None,
            created_on         = from_epoch_millis(raw.get("createdDate")),
            updated_on         = from_epoch_millis(raw.get("updatedDate")),
        )

    @staticmethod
    @_mapped("comment")
    def to_comment(raw: dict) -> Comment:
        return Comment(
            id         = raw["id"],
            content    = raw.get("text") or "",
            author     = EnterpriseMapper.to_user(raw["author"]) if raw.get("author") else None,
            created_on = from_epoch_millis(raw.get("createdDate")),
        )

    @staticmethod
    @_mapped("comment list")
    def to_comments(values: list[dict]) -> list[Comment]:
        # activity stream: only COMMENTED entries carry a comment
        return [
            EnterpriseMapper.to_comment(v["comment"])
            for v in values
            if v.get("action") == "COMMENTED" and v.get("comment")
        ]

    @staticmethod
    @_mapped("repository user")
    def to_repository_user(raw: dict) -> User:
        return EnterpriseMapper.to_user(raw)

    @staticmethod
    @_mapped("participant")
    def to_approval(raw: dict) -> bool:
        return raw.get("approved") is True

    @staticmethod
    @_mapped("page")
    def to_page(raw: dict, item_mapper: Callable[[dict], T], page: int, limit: int) -> PagedResult[T]:
        values = raw["values"]
        is_last = bool(raw.get("isLastPage", True))
        total = None
        if is_last:
            total = int(raw.get("start", (page - 1) * limit)) + len(values)
        return PagedResult(
            items     = tuple(item_mapper(v) for v in values),
            page      = page,
            page_size = int(raw.get("limit", limit)),
            total     = total,
            has_next  = not is_last,
        )

    @staticmethod
    def to_repository_body(repository: RemoteRepository) -> dict:
        return {
            "name":        repository.name,
            "scmId":       repository.scm_type,
            "public":      not repository.is_private,
            "description": repository.description or "",
        }

    @staticmethod
    def to_pull_request_body(pull_request: PullRequest, owner: str, repo_name: str) -> dict:
        repository = {"slug": repo_name, "project": {"key": owner}}
        return {
            "title":       pull_request.title,
            "description": pull_request.description or "",
            "fromRef":     {"id": f"refs/heads/{pull_request.source_branch_name}", "repository": repository},
            "toRef":       {"id": f"refs/heads/{pull_request.dest_branch_name}", "repository": repository},
        }


Mapper = type[CloudMapper] | type[EnterpriseMapper]

_MAPPERS: dict[ApiVariant, Mapper] = {
    ApiVariant.CLOUD:      CloudMapper,
    ApiVariant.ENTERPRISE: EnterpriseMapper,
}


def mapper_for(variant: ApiVariant) -> Mapper:
    return _MAPPERS[variant]
