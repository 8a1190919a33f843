"""
Shared fixtures: a fake Bitbucket server behind httpx.MockTransport, plus
small builders for cloud and enterprise payloads.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio

from bitbucket_pr.application.bitbucket_service import BitbucketService
from bitbucket_pr.application.event_bus import InMemoryEventBus
from bitbucket_pr.application.session import CredentialSession
from bitbucket_pr.config import RetryPolicy, Settings
from bitbucket_pr.domain.entities import Credentials

CLOUD = "/2.0"
ENTERPRISE = "/rest/api/1.0"


class FakeBitbucket:
    """Serves canned responses keyed by (method, path) and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, json: Any = None, status: int = 200, text: str | None = None) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status, text=text)
            if json is None:
                return httpx.Response(status)
            return httpx.Response(status, json=json)
        self.routes[(method, path)] = respond

    def add_handler(self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": {"message": f"no route {request.url.path}"}})
        return handler(request)


def cloud_user(username: str = "alice", display_name: str | None = None) -> dict:
    return {"username": username, "display_name": display_name or username.title(), "uuid": f"{{{username}}}"}


def cloud_repo(owner: str, slug: str, scm: str = "git") -> dict:
    return {
        "name": slug,
        "slug": slug,
        "full_name": f"{owner}/{slug}",
        "scm": scm,
        "is_private": True,
        "description": "",
        "links": {"clone": [
            {"name": "https", "href": f"https://alice@bitbucket.org/{owner}/{slug}.git"},
            {"name": "ssh", "href": f"git@bitbucket.org:{owner}/{slug}.git"},
        ]},
    }


def cloud_branch(name: str, commit_hash: str) -> dict:
    return {"name": name, "type": "branch", "target": {"hash": commit_hash}}


def cloud_pr(pr_id: int, source: str = "feature", dest: str = "main", author: str = "alice") -> dict:
    return {
        "id": pr_id,
        "title": f"PR {pr_id}",
        "description": "",
        "state": "OPEN",
        "source": {"branch": {"name": source}},
        "destination": {"branch": {"name": dest}},
        "close_source_branch": False,
        "author": cloud_user(author),
        "created_on": "2024-03-01T10:00:00.000000+00:00",
        "updated_on": "2024-03-02T10:00:00Z",
    }


def cloud_page(values: list, page: int = 1, pagelen: int = 50, has_next: bool = False, size: int | None = None) -> dict:
    raw = {"values": values, "page": page, "pagelen": pagelen}
    if size is not None:
        raw["size"] = size
    if has_next:
        raw["next"] = f"https://api.bitbucket.org/2.0/next?page={page + 1}"
    return raw


def enterprise_page(values: list, start: int = 0, limit: int = 25, is_last: bool = True) -> dict:
    raw = {"values": values, "size": len(values), "start": start, "limit": limit, "isLastPage": is_last}
    if not is_last:
        raw["nextPageStart"] = start + len(values)
    return raw


@pytest.fixture
def bitbucket() -> FakeBitbucket:
    fake = FakeBitbucket()
    fake.add("GET", f"{CLOUD}/user", cloud_user("alice", "Alice Liddell"))
    return fake


@pytest.fixture
def http(bitbucket: FakeBitbucket) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(bitbucket))


@pytest.fixture
def settings() -> Settings:
    return Settings(retry=RetryPolicy(max_attempts=3, base_delay=0, max_delay=0), page_size=50)


@pytest.fixture
def events() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def session(events: InMemoryEventBus, http: httpx.AsyncClient, settings: Settings) -> CredentialSession:
    return CredentialSession(events=events, http=http, settings=settings)


@pytest_asyncio.fixture
async def service(session: CredentialSession) -> BitbucketService:
    await session.login(Credentials(login="alice", password="app-password"))
    return BitbucketService(session)
