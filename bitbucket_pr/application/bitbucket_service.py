from __future__ import annotations

import logging

from bitbucket_pr.application.session import CredentialSession
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
from bitbucket_pr.domain.interfaces import IGitClientService
from bitbucket_pr.infrastructure.bitbucket_client import BitbucketClient
from bitbucket_pr.infrastructure.mapper import parse_unified_diff
from bitbucket_pr.infrastructure.remote_url import parse_remote_url

log = logging.getLogger(__name__)

SUPPORTED_SCM = "git"
DEFAULT_PAGE_LIMIT = 20


class BitbucketService(IGitClientService):
    """
    Uniform facade over Bitbucket Cloud and Bitbucket enterprise servers.

    Every call borrows the session's client (NotAuthenticatedError when
    logged out), asks it for the variant's route, and maps the response to
    domain entities before returning. Provider and transport errors are not
    caught here.
    """

    origin = "Bitbucket"
    title = f"{origin} Extension"

    def __init__(self, session: CredentialSession) -> None:
        self._session = session

    @property
    def _client(self) -> BitbucketClient:
        return self._session.client

    @property
    def git_client_type(self) -> str | None:
        return self._session.git_client_type

    # Repositories

    async def _git_repositories(self, client: BitbucketClient, route) -> list[RemoteRepository]:
        values = await client.get_all_values(route)
        repositories = [client.mapper.to_repository(v) for v in values]
        return [r for r in repositories if r.scm_type == SUPPORTED_SCM]

    async def get_user_repositories(self) -> list[RemoteRepository]:
        client = self._client
        return await self._git_repositories(client, client.endpoints.user_repositories(client.username))

    async def get_all_repositories(self) -> list[RemoteRepository]:
        """
        The user's repositories followed by every team's repositories.

        A repository reachable both personally and through a team is
        returned twice; no de-duplication is done.
        """
        client = self._client
        repositories = await self.get_user_repositories()
        for team in await self.get_teams():
            team_repositories = await self._git_repositories(client, client.endpoints.team_repositories(team.username))
            log.debug("Team %s: %d repositories", team.username, len(team_repositories))
            repositories.extend(team_repositories)
        return repositories

    async def get_teams(self) -> list[Team]:
        client = self._client
        values = await client.get_all_values(client.endpoints.teams())
        return [client.mapper.to_team(v) for v in values]

    async def create_repository(self, repository: RemoteRepository) -> RemoteRepository:
        client = self._client
        owner = repository.owner or client.endpoints.personal_owner(client.username)
        raw = await client.post_json(
            client.endpoints.create_repository(owner, repository.name),
            client.mapper.to_repository_body(repository),
        )
        return client.mapper.to_repository(raw)

    def is_origin_repo(self, repository: RemoteRepository | None) -> bool:
        """True when the clone URL points at the instance we are logged in to."""
        if repository is None or not repository.clone_url:
            return False
        remote = parse_remote_url(repository.clone_url)
        if remote is None:
            return False
        return remote.host.lower() in self._client.api_host.lower()

    # Branches and commits

    async def get_branches(self, repo_name: str, owner: str) -> list[Branch]:
        client = self._client
        values = await client.get_all_values(client.endpoints.branches(owner, repo_name))
        default_branch = None
        if not client.endpoints.default_branch_inline:
            raw_repository = await client.get_json(client.endpoints.repository(owner, repo_name))
            default_branch = client.mapper.default_branch_name(raw_repository)
        return [client.mapper.to_branch(v, default_branch) for v in values]

    async def get_commits_range(self, repo_name: str, owner: str, from_branch: Branch, to_branch: Branch) -> list[Commit]:
        """Commits reachable from to_branch's tip but not from from_branch's."""
        client = self._client
        route = client.endpoints.commits_range(
            owner,
            repo_name,
            from_branch.target_hash or from_branch.name,
            to_branch.target_hash or to_branch.name,
        )
        values = await client.get_all_values(route)
        return [client.mapper.to_commit(v) for v in values]

    async def get_commit_by_id(self, repo_name: str, owner: str, commit_hash: str) -> Commit:
        client = self._client
        raw = await client.get_json(client.endpoints.commit(owner, repo_name, commit_hash))
        return client.mapper.to_commit(raw)

    # Pull requests

    async def get_pull_requests(self, repo_name: str, owner: str, limit: int = DEFAULT_PAGE_LIMIT, page: int = 1) -> PagedResult[PullRequest]:
        client = self._client
        raw = await client.get_page(client.endpoints.pull_requests(owner, repo_name), page, limit)
        return client.mapper.to_page(raw, client.mapper.to_pull_request, page, limit)

    async def get_all_pull_requests(self, repo_name: str, owner: str) -> list[PullRequest]:
        pull_requests: list[PullRequest] = []
        page = 1
        while True:
            result = await self.get_pull_requests(repo_name, owner, limit=DEFAULT_PAGE_LIMIT, page=page)
            pull_requests.extend(result.items)
            if not result.has_next or not result.items:
                break
            page += 1
        log.debug("%s/%s: %d pull requests over %d page(s)", owner, repo_name, len(pull_requests), page)
        return pull_requests

    async def get_pull_request(self, repo_name: str, owner: str, pull_request_id: int) -> PullRequest:
        client = self._client
        raw = await client.get_json(client.endpoints.pull_request(owner, repo_name, pull_request_id))
        return client.mapper.to_pull_request(raw)

    async def get_pull_request_for_branches(self, repo_name: str, owner: str, source_branch: str, dest_branch: str) -> PullRequest | None:
        client = self._client
        route = client.endpoints.pull_requests_for_branches(owner, repo_name, source_branch, dest_branch)
        raw = await client.get_page(route, 1, DEFAULT_PAGE_LIMIT)
        result = client.mapper.to_page(raw, client.mapper.to_pull_request, 1, DEFAULT_PAGE_LIMIT)
        for pull_request in result.items:
            if pull_request.source_branch_name == source_branch and pull_request.dest_branch_name == dest_branch:
                return pull_request
        return None

    async def get_pull_requests_authors(self, repo_name: str, owner: str) -> list[User]:
        authors: dict[str, User] = {}
        for pull_request in await self.get_all_pull_requests(repo_name, owner):
            author = pull_request.author
            if author is not None and author.username not in authors:
                authors[author.username] = author
        return list(authors.values())

    async def create_pull_request(self, pull_request: PullRequest, repo_name: str, owner: str) -> PullRequest:
        client = self._client
        raw = await client.post_json(
            client.endpoints.pull_requests(owner, repo_name),
            client.mapper.to_pull_request_body(pull_request, owner, repo_name),
        )
        created = client.mapper.to_pull_request(raw)
        log.info("Created pull request #%s %s -> %s in %s/%s", created.id, created.source_branch_name, created.dest_branch_name, owner, repo_name)
        return created

    async def approve_pull_request(self, repo_name: str, owner: str, pull_request_id: int) -> bool:
        """
        True only for a non-empty response whose approved flag is true.

        An empty response and approved=false both come back as False, so the
        caller cannot tell "not approved" from a silent no-op.
        """
        client = self._client
        raw = await client.post_json(client.endpoints.approve(owner, repo_name, pull_request_id))
        return raw is not None and client.mapper.to_approval(raw)

    async def disapprove_pull_request(self, repo_name: str, owner: str, pull_request_id: int) -> None:
        client = self._client
        await client.delete(client.endpoints.approve(owner, repo_name, pull_request_id))

    async def get_pull_request_diff(self, repo_name: str, owner: str, pull_request_id: int) -> list[FileDiff]:
        client = self._client
        text = await client.get_text(client.endpoints.pull_request_diff(owner, repo_name, pull_request_id))
        return parse_unified_diff(text)

    async def get_pull_request_commits(self, repo_name: str, owner: str, pull_request_id: int) -> list[Commit]:
        client = self._client
        values = await client.get_all_values(client.endpoints.pull_request_commits(owner, repo_name, pull_request_id))
        return [client.mapper.to_commit(v) for v in values]

    async def get_pull_request_comments(self, repo_name: str, owner: str, pull_request_id: int) -> list[Comment]:
        client = self._client
        values = await client.get_all_values(client.endpoints.pull_request_comments(owner, repo_name, pull_request_id))
        return client.mapper.to_comments(values)

    async def get_repository_users(self, repo_name: str, owner: str, filter: str | None = None) -> list[User]:
        client = self._client
        values = await client.get_all_values(client.endpoints.repository_users(owner, repo_name, filter))
        users = [client.mapper.to_repository_user(v) for v in values]
        if not filter:
            return users
        needle = filter.lower()
        return [
            u for u in users
            if needle in u.username.lower() or needle in (u.display_name or "").lower()
        ]
