"""
Route tables for the two Bitbucket REST variants.

Cloud speaks /2.0 on api.bitbucket.org; enterprise (Bitbucket Server/Data
Center) speaks /rest/api/1.0 on a host the user supplies. Both classes expose
the same methods, so the service never branches on the variant: it asks the
session's client for its endpoints and builds requests from them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from bitbucket_pr.config import CLOUD_API_URL, ENTERPRISE_API


class ApiVariant(enum.Enum):
    CLOUD      = "Cloud"
    ENTERPRISE = "Enterprise"


@dataclass(frozen=True)
class Route:
    path:   str
    params: dict[str, Any] = field(default_factory=dict)


def _q(segment: Any) -> str:
    return quote(str(segment), safe="~")


class CloudEndpoints:
    variant = ApiVariant.CLOUD
    # Cloud branch payloads carry no default flag; it lives on the repository.
    default_branch_inline = False

    def __init__(self, api_url: str = CLOUD_API_URL) -> None:
        self.api_url = api_url.rstrip("/")

    def page_params(self, page: int, limit: int) -> dict[str, Any]:
        return {"page": page, "pagelen": limit}

    def current_user(self, login: str) -> Route:
        return Route("/user")

    def personal_owner(self, username: str) -> str:
        return username

    def user_repositories(self, username: str) -> Route:
        return Route(f"/repositories/{_q(username)}")

    def teams(self) -> Route:
        return Route("/teams", {"role": "member"})

    def team_repositories(self, team: str) -> Route:
        return Route(f"/repositories/{_q(team)}")

    def repository(self, owner: str, repo: str) -> Route:
        return Route(f"/repositories/{_q(owner)}/{_q(repo)}")

    def create_repository(self, owner: str, repo: str) -> Route:
        return self.repository(owner, repo)

    def branches(self, owner: str, repo: str) -> Route:
        return Route(f"/repositories/{_q(owner)}/{_q(repo)}/refs/branches")

    def commits_range(self, owner: str, repo: str, from_hash: str, to_hash: str) -> Route:
        return Route(
            f"/repositories/{_q(owner)}/{_q(repo)}/commits",
            {"include": to_hash, "exclude": from_hash},
        )

    def commit(self, owner: str, repo: str, commit_hash: str) -> Route:
        return Route(f"/repositories/{_q(owner)}/{_q(repo)}/commit/{_q(commit_hash)}")

    def pull_requests(self, owner: str, repo: str) -> Route:
        return Route(f"/repositories/{_q(owner)}/{_q(repo)}/pullrequests")

    def pull_requests_for_branches(self, owner: str, repo: str, source: str, dest: str) -> Route:
        query = (
            f'source.branch.name="{source}" AND destination.branch.name="{dest}" '
            f'AND state="OPEN"'
        )
        return Route(f"/repositories/{_q(owner)}/{_q(repo)}/pullrequests", {"q": query})

    def pull_request(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(f"/repositories/{_q(owner)}/{_q(repo)}/pullrequests/{int(pull_request_id)}")

    def approve(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(self.pull_request(owner, repo, pull_request_id).path + "/approve")

    def pull_request_diff(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(self.pull_request(owner, repo, pull_request_id).path + "/diff")

    def pull_request_commits(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(self.pull_request(owner, repo, pull_request_id).path + "/commits")

    def pull_request_comments(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(self.pull_request(owner, repo, pull_request_id).path + "/comments")

    def repository_users(self, owner: str, repo: str, filter: str | None) -> Route:
        # Cloud has no per-repository user search; workspace members are
        # filtered client-side.
        return Route(f"/workspaces/{_q(owner)}/members")


class EnterpriseEndpoints:
    variant = ApiVariant.ENTERPRISE
    default_branch_inline = True

    def __init__(self, host: str) -> None:
        host = host.rstrip("/")
        if "://" not in host:
            host = f"https://{host}"
        self.api_url = host + ENTERPRISE_API

    def page_params(self, page: int, limit: int) -> dict[str, Any]:
        return {"start": (page - 1) * limit, "limit": limit}

    def current_user(self, login: str) -> Route:
        return Route(f"/users/{_q(login)}")

    def personal_owner(self, username: str) -> str:
        # personal projects are keyed "~username"
        return f"~{username}"

    def user_repositories(self, username: str) -> Route:
        return Route(f"/projects/~{_q(username)}/repos")

    def teams(self) -> Route:
        return Route("/projects")

    def team_repositories(self, team: str) -> Route:
        return Route(f"/projects/{_q(team)}/repos")

    def repository(self, owner: str, repo: str) -> Route:
        return Route(f"/projects/{_q(owner)}/repos/{_q(repo)}")

    def create_repository(self, owner: str, repo: str) -> Route:
        return Route(f"/projects/{_q(owner)}/repos")

    def branches(self, owner: str, repo: str) -> Route:
        return Route(f"/projects/{_q(owner)}/repos/{_q(repo)}/branches")

    def commits_range(self, owner: str, repo: str, from_hash: str, to_hash: str) -> Route:
        return Route(
            f"/projects/{_q(owner)}/repos/{_q(repo)}/commits",
            {"since": from_hash, "until": to_hash},
        )

    def commit(self, owner: str, repo: str, commit_hash: str) -> Route:
        return Route(f"/projects/{_q(owner)}/repos/{_q(repo)}/commits/{_q(commit_hash)}")

    def pull_requests(self, owner: str, repo: str) -> Route:
        return Route(f"/projects/{_q(owner)}/repos/{_q(repo)}/pull-requests")

    def pull_requests_for_branches(self, owner: str, repo: str, source: str, dest: str) -> Route:
        return Route(
            f"/projects/{_q(owner)}/repos/{_q(repo)}/pull-requests",
            {"at": f"refs/heads/{dest}", "direction": "INCOMING", "state": "OPEN"},
        )

    def pull_request(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(f"/projects/{_q(owner)}/repos/{_q(repo)}/pull-requests/{int(pull_request_id)}")

    def approve(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(self.pull_request(owner, repo, pull_request_id).path + "/approve")

    def pull_request_diff(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(self.pull_request(owner, repo, pull_request_id).path + ".diff")

    def pull_request_commits(self, owner: str, repo: str, pull_request_id: int) -> Route:
        return Route(self.pull_request(owner, repo, pull_request_id).path + "/commits")

    def pull_request_comments(self, owner: str, repo: str, pull_request_id: int) -> Route:
        # Comments are only listable through the activity stream.
        return Route(self.pull_request(owner, repo, pull_request_id).path + "/activities")

    def repository_users(self, owner: str, repo: str, filter: str | None) -> Route:
        params: dict[str, Any] = {
            "permission.1": "REPO_READ",
            "permission.1.projectKey": owner,
            "permission.1.repositorySlug": repo,
        }
        if filter:
            params["filter"] = filter
        return Route("/users", params)


Endpoints = CloudEndpoints | EnterpriseEndpoints


def endpoints_for(variant: ApiVariant, host: str | None = None, cloud_api_url: str = CLOUD_API_URL) -> Endpoints:
    if variant is ApiVariant.ENTERPRISE:
        if not host:
            raise ValueError("An enterprise host is required")
        return EnterpriseEndpoints(host)
    return CloudEndpoints(cloud_api_url)
