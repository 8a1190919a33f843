"""
main.py: Dependency Wiring (Composition Root)
------------------------------------------------
Reads configuration, builds the concrete objects, injects them, and runs one
CLI command. No business logic lives here.

                           main.py  (wires everything)
                              │
              ┌───────────────┼──────────────────┐
              ▼               ▼                  ▼
    PullRequestWorkflow  BitbucketService   GitLocalRepository
              │               │
              ▼               ▼
      InMemoryEventBus  CredentialSession ──► BitbucketClient (httpx)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import httpx

from bitbucket_pr.application.bitbucket_service import BitbucketService
from bitbucket_pr.application.event_bus import InMemoryEventBus
from bitbucket_pr.application.pull_request_workflow import PullRequestWorkflow, WorkflowState
from bitbucket_pr.application.session import CredentialSession
from bitbucket_pr.config import Settings, load_settings
from bitbucket_pr.domain.entities import Credentials
from bitbucket_pr.domain.exceptions import GitClientError
from bitbucket_pr.domain.interfaces import INavigator
from bitbucket_pr.infrastructure.git_repository import GitLocalRepository

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


class LoggingNavigator(INavigator):
    """The CLI has no pages to go back to; it just reports the outcome."""

    def navigate_back(self, success: bool) -> None:
        log.info("Pull request flow finished | success=%s", success)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def _credentials(settings: Settings) -> Credentials:
    """Fails fast when the login variables are missing."""
    if not settings.login or not settings.password:
        log.error("BITBUCKET_LOGIN and BITBUCKET_PASSWORD environment variables are required")
        sys.exit(1)
    if settings.is_enterprise and not settings.host:
        log.error("BITBUCKET_HOST is required when BITBUCKET_ENTERPRISE is set")
        sys.exit(1)
    return Credentials(
        login         = settings.login,
        password      = settings.password,
        host          = settings.host,
        is_enterprise = settings.is_enterprise,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _list_repositories(service: BitbucketService, args: argparse.Namespace) -> int:
    repositories = await service.get_all_repositories()
    for repo in repositories:
        print(f"{repo.owner}/{repo.name}\t{repo.clone_url or ''}")
    log.info("%d repositories", len(repositories))
    return 0


async def _list_branches(service: BitbucketService, args: argparse.Namespace) -> int:
    for branch in await service.get_branches(args.repo, args.owner):
        marker = "*" if branch.is_default else " "
        print(f"{marker} {branch.name}\t{branch.target_hash or ''}")
    return 0


async def _list_pull_requests(service: BitbucketService, args: argparse.Namespace) -> int:
    if args.all:
        pull_requests = await service.get_all_pull_requests(args.repo, args.owner)
    else:
        result = await service.get_pull_requests(args.repo, args.owner, limit=args.limit, page=args.page)
        pull_requests = list(result.items)
        log.info("Page %d | %d items | more=%s", result.page, len(result.items), result.has_next)
    for pr in pull_requests:
        print(f"#{pr.id}\t{pr.state or ''}\t{pr.source_branch_name} -> {pr.dest_branch_name}\t{pr.title}")
    return 0


async def _create_pull_request(service: BitbucketService, args: argparse.Namespace, events: InMemoryEventBus) -> int:
    workflow = PullRequestWorkflow(
        git_service        = service,
        local_repositories = GitLocalRepository(args.path),
        navigator          = LoggingNavigator(),
        events             = events,
    )
    try:
        await workflow.reload()
        if workflow.error_message:
            log.error("Could not load branches: %s", workflow.error_message)
            return 1

        if args.source:
            source = next((b for b in workflow.local_branches if b.name == args.source), None)
            if source is None:
                log.error("No local branch named %s", args.source)
                return 1
            workflow.set_source_branch(source)
        if args.destination:
            destination = next((b for b in workflow.remote_branches if b.name == args.destination), None)
            if destination is None:
                log.error("No remote branch named %s", args.destination)
                return 1
            workflow.set_destination_branch(destination)

        workflow.set_title(args.title)
        workflow.set_description(args.description or "")
        workflow.set_close_source_branch(args.close_source_branch)

        if workflow.message:
            log.warning(workflow.message)
        if not workflow.can_submit():
            log.error("Cannot submit: check the title and that the source branch tracks a remote branch other than the destination")
            return 1

        outcome = await workflow.submit()
        if outcome is not WorkflowState.COMPLETED:
            log.error("❌ Pull request failed: %s", workflow.error_message)
            return 1
        pr = workflow.created_pull_request
        log.info("✅ Created pull request #%s", pr.id if pr else "?")
        return 0
    finally:
        workflow.close()


# ---------------------------------------------------------------------------
# Dependency wiring
# ---------------------------------------------------------------------------

async def build_and_run(settings: Settings, args: argparse.Namespace) -> int:
    credentials = _credentials(settings)

    events = InMemoryEventBus()
    http   = httpx.AsyncClient()

    try:
        session = CredentialSession(events=events, http=http, settings=settings)
        service = BitbucketService(session)

        try:
            await session.login(credentials)
            if args.command == "repos":
                return await _list_repositories(service, args)
            if args.command == "branches":
                return await _list_branches(service, args)
            if args.command == "pull-requests":
                return await _list_pull_requests(service, args)
            return await _create_pull_request(service, args, events)
        except GitClientError as exc:
            log.error("❌ %s: %s", type(exc).__name__, exc)
            return 1
        finally:
            session.logout()
    finally:
        # Always clean up, even if an exception occurred
        await http.aclose()
        events.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bitbucket repositories, branches and pull requests")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("repos", help="List your repositories and your teams' repositories")

    branches = commands.add_parser("branches", help="List remote branches")
    branches.add_argument("owner")
    branches.add_argument("repo")

    prs = commands.add_parser("pull-requests", help="List pull requests")
    prs.add_argument("owner")
    prs.add_argument("repo")
    prs.add_argument("--page", type=int, default=1)
    prs.add_argument("--limit", type=int, default=20)
    prs.add_argument("--all", action="store_true", help="Fetch every page")

    create = commands.add_parser("create-pr", help="Create a pull request from a local clone")
    create.add_argument("--path", default=".", help="Working tree of the clone (default: .)")
    create.add_argument("--title", required=True)
    create.add_argument("--description")
    create.add_argument("--source", help="Local branch (default: the checked-out branch)")
    create.add_argument("--destination", help="Remote branch (default: the repository's main branch)")
    create.add_argument("--close-source-branch", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    return asyncio.run(build_and_run(load_settings(), args))


if __name__ == "__main__":
    sys.exit(main())
