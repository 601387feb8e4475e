"""
Change notes for review request bodies.

A change note describes what changed in the package between the version a
repository pins and the version it is bumped to: a link to the diff and
one line per commit, oldest first. Commits come from the package's own
source repository, compared between its release tags.
"""

from dataclasses import dataclass

import httpx
import structlog

from up_to_code.exceptions import ExternalServiceError
from up_to_code.models.domain import Commit, RepositoryRef, UpdatePlan
from up_to_code.providers.base import HostDirectory
from up_to_code.rendering import TemplateRenderer

log = structlog.get_logger(__name__)

CI_SKIP_MARKERS = (" [ci skip]", " [skip ci]")

CHANGELOG_UNAVAILABLE = "_Changelog unavailable._"


@dataclass(frozen=True)
class PackageSource:
    """Where the package's own commits live."""

    directory: HostDirectory
    repository: RepositoryRef


def clean_title(title: str) -> str:
    """Remove CI skip markers from a commit title."""
    for marker in CI_SKIP_MARKERS:
        title = title.replace(marker, "")
    return title


class ChangeNotePublisher:
    """Render change notes and review request bodies.

    Args:
        renderer: Template renderer (defaults to the packaged templates)
        bot_author: Commit author rendered without an ``author:`` prefix
        tag_prefix: Prefix of release tags in the source repository
    """

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        bot_author: str | None = None,
        tag_prefix: str = "v",
    ) -> None:
        self.renderer = renderer or TemplateRenderer()
        self.bot_authors = {bot_author} if bot_author else set()
        self.tag_prefix = tag_prefix

    async def build_change_note(self, directory: HostDirectory, repo: RepositoryRef, base: str, head: str) -> str:
        """Render the markdown change note between two revisions of ``repo``.

        Raises:
            HostAPIError: If the compare call fails
        """
        newest_first = await directory.compare_revisions(repo, base, head)
        commits = [self._commit_line(commit) for commit in reversed(newest_first)]

        return self.renderer.render(
            "change_note.md.j2",
            {
                "base": base,
                "head": head,
                "compare_url": directory.compare_url(repo, base, head),
                "commits": commits,
            },
        )

    async def release_notes(self, source: PackageSource | None, before: str, after: str) -> str:
        """Change note between two published versions of the package.

        Falls back to a plain "changelog unavailable" line when the source
        repository is unknown or cannot be compared.
        """
        if source is None:
            return CHANGELOG_UNAVAILABLE

        base = f"{self.tag_prefix}{before}"
        head = f"{self.tag_prefix}{after}"
        try:
            return await self.build_change_note(source.directory, source.repository, base, head)
        except (ExternalServiceError, httpx.HTTPError) as e:
            log.warning(
                "change_note_unavailable",
                repo=source.repository.full_name,
                base=base,
                head=head,
                error=str(e),
            )
            return CHANGELOG_UNAVAILABLE

    def build_review_body(self, plan: UpdatePlan, change_note: str) -> str:
        """Render the full review request description for an update."""
        return self.renderer.render(
            "review_body.md.j2",
            {
                "package_name": plan.package_name,
                "before_version": plan.before_version,
                "after_version": plan.after_version,
                "breaking": plan.breaking,
                "change_note": change_note,
            },
        )

    def _commit_line(self, commit: Commit) -> dict[str, str]:
        return {
            "author": "" if commit.author_name in self.bot_authors else commit.author_name,
            "title": clean_title(commit.title),
            "url": commit.web_url,
        }
