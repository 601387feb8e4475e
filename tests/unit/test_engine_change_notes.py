"""Tests for up_to_code/engine/change_notes.py - change note rendering."""

import pytest

from up_to_code.engine.change_notes import (
    CHANGELOG_UNAVAILABLE,
    ChangeNotePublisher,
    PackageSource,
    clean_title,
)
from up_to_code.exceptions import HostAPIError
from up_to_code.models.domain import Commit, UpdatePlan


def commit(sha: str, title: str, author: str = "Ann") -> Commit:
    return Commit(id=sha, title=title, author_name=author, web_url=f"https://gitlab.example.com/c/{sha}")


@pytest.fixture
def publisher() -> ChangeNotePublisher:
    return ChangeNotePublisher(bot_author="up-to-code[bot]")


class TestCleanTitle:
    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("fix: bug [ci skip]", "fix: bug"),
            ("chore: release 1.3.0 [skip ci]", "chore: release 1.3.0"),
            ("feat: plain", "feat: plain"),
            ("[ci skip] leading marker", "[ci skip] leading marker"),
        ],
    )
    def test_strips_markers(self, title, expected):
        assert clean_title(title) == expected


class TestBuildChangeNote:
    @pytest.mark.asyncio
    async def test_renders_oldest_first(self, publisher, mock_directory, gitlab_repo):
        mock_directory.compare_revisions.return_value = [
            commit("c3", "fix: bug [ci skip]", "Cy"),
            commit("c2", "feat: padding", "Bob"),
            commit("c1", "chore: setup", "Ann"),
        ]

        note = await publisher.build_change_note(mock_directory, gitlab_repo, "v1.1.0", "v1.3.0")

        assert note.splitlines() == [
            "### Diff",
            "",
            "[v1.1.0...v1.3.0](https://gitlab.example.com/acme/web/-/compare/v1.1.0...v1.3.0)",
            "",
            "### Commits",
            "",
            "- Ann: [chore: setup](https://gitlab.example.com/c/c1)",
            "- Bob: [feat: padding](https://gitlab.example.com/c/c2)",
            "- Cy: [fix: bug](https://gitlab.example.com/c/c3)",
        ]
        mock_directory.compare_revisions.assert_awaited_once_with(gitlab_repo, "v1.1.0", "v1.3.0")

    @pytest.mark.asyncio
    async def test_bot_author_has_no_prefix(self, publisher, mock_directory, gitlab_repo):
        mock_directory.compare_revisions.return_value = [
            commit("c2", "chore: release 1.3.0 [skip ci]", "up-to-code[bot]"),
            commit("c1", "fix: bug", "Ann"),
        ]

        note = await publisher.build_change_note(mock_directory, gitlab_repo, "v1.1.0", "v1.3.0")

        lines = note.splitlines()
        assert lines[-2] == "- Ann: [fix: bug](https://gitlab.example.com/c/c1)"
        assert lines[-1] == "- [chore: release 1.3.0](https://gitlab.example.com/c/c2)"

    @pytest.mark.asyncio
    async def test_no_commits(self, publisher, mock_directory, gitlab_repo):
        mock_directory.compare_revisions.return_value = []

        note = await publisher.build_change_note(mock_directory, gitlab_repo, "v1", "v2")

        assert note.endswith("### Commits")


class TestReleaseNotes:
    @pytest.mark.asyncio
    async def test_compares_release_tags(self, publisher, mock_directory, gitlab_repo):
        mock_directory.compare_revisions.return_value = [commit("c1", "fix: bug")]

        note = await publisher.release_notes(PackageSource(mock_directory, gitlab_repo), "1.1.0", "1.3.0")

        mock_directory.compare_revisions.assert_awaited_once_with(gitlab_repo, "v1.1.0", "v1.3.0")
        assert "[v1.1.0...v1.3.0]" in note

    @pytest.mark.asyncio
    async def test_unknown_source(self, publisher):
        assert await publisher.release_notes(None, "1.1.0", "1.3.0") == CHANGELOG_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_compare_failure_falls_back(self, publisher, mock_directory, gitlab_repo):
        mock_directory.compare_revisions.side_effect = HostAPIError("GitLab API error", status_code=404)

        note = await publisher.release_notes(PackageSource(mock_directory, gitlab_repo), "1.1.0", "1.3.0")

        assert note == CHANGELOG_UNAVAILABLE


class TestReviewBody:
    def test_non_breaking_body(self, publisher, gitlab_repo):
        plan = UpdatePlan.create("left-pad", gitlab_repo, "1.1.0", "1.3.0", "up-to-code-left-pad")

        body = publisher.build_review_body(plan, "### Diff")

        assert body == "Bumps `left-pad` from 1.1.0 to 1.3.0.\n\n### Diff"

    def test_breaking_body_announces_manual_merge(self, publisher, gitlab_repo):
        plan = UpdatePlan.create("left-pad", gitlab_repo, "0.9.0", "1.3.0", "up-to-code-left-pad")

        body = publisher.build_review_body(plan, CHANGELOG_UNAVAILABLE)

        assert "Major version update" in body
        assert "merge manually" in body
        assert body.endswith(CHANGELOG_UNAVAILABLE)
