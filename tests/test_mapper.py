"""
Tests for infrastructure/mapper.py
==================================

Wire -> domain mapping for both API variants, plus the two outbound bodies.
"""

from datetime import datetime, timezone

import pytest

from bitbucket_pr.domain.entities import PullRequest, RemoteRepository
from bitbucket_pr.domain.exceptions import MappingError
from bitbucket_pr.infrastructure.endpoints import ApiVariant
from bitbucket_pr.infrastructure.mapper import (
    CloudMapper,
    EnterpriseMapper,
    mapper_for,
    parse_unified_diff,
)
from conftest import cloud_page, cloud_pr, cloud_repo, enterprise_page


class TestCloudMapper:
    """Bitbucket Cloud payloads."""

    def test_repository(self):
        repo = CloudMapper.to_repository(cloud_repo("acme", "widgets"))
        assert repo == RemoteRepository(
            name="widgets",
            owner="acme",
            clone_url="https://alice@bitbucket.org/acme/widgets.git",
            scm_type="git",
            description="",
            is_private=True,
            full_name="acme/widgets",
        )

    def test_repository_without_scm_is_malformed(self):
        raw = cloud_repo("acme", "widgets")
        del raw["scm"]
        with pytest.raises(MappingError):
            CloudMapper.to_repository(raw)

    def test_non_dict_payload_is_malformed(self):
        with pytest.raises(MappingError):
            CloudMapper.to_pull_request(None)

    def test_branch_default_comes_from_mainbranch(self):
        default = CloudMapper.default_branch_name({"mainbranch": {"name": "main"}})
        main = CloudMapper.to_branch({"name": "main", "target": {"hash": "abc"}}, default)
        dev = CloudMapper.to_branch({"name": "dev", "target": {"hash": "def"}}, default)
        assert main.is_default and main.target_hash == "abc"
        assert not dev.is_default

    def test_pull_request(self):
        pr = CloudMapper.to_pull_request(cloud_pr(7, "feature", "main", "bob"))
        assert pr.id == 7
        assert pr.source_branch_name == "feature"
        assert pr.dest_branch_name == "main"
        assert pr.author.username == "bob"
        assert pr.updated_on == datetime(2024, 3, 2, 10, 0, tzinfo=timezone.utc)

    def test_commit_with_raw_author_only(self):
        commit = CloudMapper.to_commit({"hash": "abc", "message": "fix", "author": {"raw": "Bob <bob@x.io>"}})
        assert commit.author.username == "Bob <bob@x.io>"
        assert commit.date is None

    def test_deleted_comments_are_skipped(self):
        comments = CloudMapper.to_comments([
            {"id": 1, "content": {"raw": "looks good"}, "user": {"username": "bob"}},
            {"id": 2, "content": {"raw": ""}, "deleted": True},
            {"id": 3, "content": {"raw": "nit"}, "parent": {"id": 1}},
        ])
        assert [c.id for c in comments] == [1, 3]
        assert comments[1].parent_id == 1

    def test_workspace_member_unwraps_user(self):
        user = CloudMapper.to_repository_user({"user": {"nickname": "carol", "display_name": "Carol"}})
        assert user.username == "carol"

    def test_page(self):
        page = CloudMapper.to_page(cloud_page([cloud_pr(1)], page=2, pagelen=20, has_next=True, size=41), CloudMapper.to_pull_request, 2, 20)
        assert page.page == 2
        assert page.page_size == 20
        assert page.total == 41
        assert page.has_next
        assert page.items[0].id == 1

    def test_pull_request_body(self):
        pr = PullRequest("Fix bug", None, "feature", "main", close_source_branch=True)
        assert CloudMapper.to_pull_request_body(pr, "acme", "widgets") == {
            "title": "Fix bug",
            "description": "",
            "source": {"branch": {"name": "feature"}},
            "destination": {"branch": {"name": "main"}},
            "close_source_branch": True,
        }

    def test_repository_body(self):
        body = CloudMapper.to_repository_body(RemoteRepository(name="new", owner="acme", is_private=False))
        assert body == {"name": "new", "scm": "git", "is_private": False, "description": ""}


class TestEnterpriseMapper:
    """Bitbucket Server payloads."""

    def test_repository(self):
        repo = EnterpriseMapper.to_repository({
            "slug": "widgets",
            "name": "Widgets",
            "scmId": "git",
            "public": False,
            "project": {"key": "ACME"},
            "links": {"clone": [
                {"name": "ssh", "href": "ssh://git@git.acme.io:7999/acme/widgets.git"},
                {"name": "http", "href": "https://git.acme.io/scm/acme/widgets.git"},
            ]},
        })
        assert repo.owner == "ACME"
        assert repo.name == "widgets"
        assert repo.clone_url == "https://git.acme.io/scm/acme/widgets.git"
        assert repo.is_private

    def test_branch_uses_inline_default_flag(self):
        branch = EnterpriseMapper.to_branch({"id": "refs/heads/main", "displayId": "main", "latestCommit": "abc", "isDefault": True})
        assert branch.name == "main"
        assert branch.target_hash == "abc"
        assert branch.is_default

    def test_pull_request_and_epoch_dates(self):
        pr = EnterpriseMapper.to_pull_request({
            "id": 3,
            "title": "Add X",
            "fromRef": {"displayId": "feature"},
            "toRef": {"displayId": "main"},
            "author": {"user": {"name": "bob", "slug": "bob", "displayName": "Bob", "id": 12}},
            "createdDate": 0,
        })
        assert pr.source_branch_name == "feature"
        assert pr.author.uuid == "12"
        assert pr.created_on == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert pr.description == ""

    def test_comments_only_from_commented_activities(self):
        comments = EnterpriseMapper.to_comments([
            {"action": "OPENED"},
            {"action": "COMMENTED", "comment": {"id": 5, "text": "hi", "author": {"name": "bob"}}},
        ])
        assert len(comments) == 1
        assert comments[0].content == "hi"

    def test_page_maps_is_last_page(self):
        first = EnterpriseMapper.to_page(enterprise_page([{}] * 2, start=0, limit=2, is_last=False), lambda v: v, 1, 2)
        last = EnterpriseMapper.to_page(enterprise_page([{}], start=2, limit=2, is_last=True), lambda v: v, 2, 2)
        assert first.has_next and first.total is None
        assert not last.has_next and last.total == 3

    def test_pull_request_body_uses_refs(self):
        body = EnterpriseMapper.to_pull_request_body(PullRequest("T", "D", "feature", "main"), "ACME", "widgets")
        assert body["fromRef"]["id"] == "refs/heads/feature"
        assert body["toRef"]["repository"] == {"slug": "widgets", "project": {"key": "ACME"}}


class TestDiffParsing:

    def test_two_files(self):
        text = (
            "diff --git a/src/app.py b/src/app.py\n"
            "index 1..2 100644\n"
            "--- a/src/app.py\n"
            "+++ b/src/app.py\n"
            "@@ -1,3 +1,3 @@\n"
            " import os\n"
            "-x = 1\n"
            "+x = 2\n"
            "+y = 3\n"
            "diff --git a/new.txt b/new.txt\n"
            "new file mode 100644\n"
            "--- /dev/null\n"
            "+++ b/new.txt\n"
            "@@ -0,0 +1 @@\n"
            "+hello\n"
        )
        first, second = parse_unified_diff(text)
        assert (first.old_path, first.new_path, first.additions, first.deletions) == ("src/app.py", "src/app.py", 2, 1)
        assert second.old_path is None
        assert second.new_path == "new.txt"
        assert second.additions == 1

    def test_empty(self):
        assert parse_unified_diff("") == []


def test_mapper_for_variant():
    assert mapper_for(ApiVariant.CLOUD) is CloudMapper
    assert mapper_for(ApiVariant.ENTERPRISE) is EnterpriseMapper
