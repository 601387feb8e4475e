"""Keep exactly one open review request per update branch."""

from up_to_code.engine.context import RepositoryContext
from up_to_code.exceptions import ReviewConflictError, ReviewUpdateError
from up_to_code.models.domain import ReviewRequest


class ReviewRequestReconciler:
    """Create or update the review request of an update branch.

    Running twice with the same inputs leaves one open request with the
    latest title and description:

    - no open request: create one
    - one open request: update it in place, then re-read it and verify
      the host persisted the new title and description
    - several open requests: refuse to choose and make no mutating call
    """

    async def reconcile(
        self, ctx: RepositoryContext, branch: str, title: str, description: str
    ) -> ReviewRequest:
        """Reconcile the review request from ``branch`` into the default branch.

        Raises:
            ReviewConflictError: If more than one open request matches
            ReviewUpdateError: If an update was not persisted
            HostAPIError: If a host call fails
        """
        repo = ctx.repository
        target = repo.default_branch
        existing = await ctx.directory.list_open_review_requests(repo, branch, target)

        if len(existing) > 1:
            numbers = [request.number for request in existing]
            ctx.log.error("review_request_conflict", branch=branch, numbers=numbers)
            raise ReviewConflictError(
                f"{len(existing)} open review requests for {branch} in {repo.full_name}: {numbers}",
                branch=branch,
                count=len(existing),
            )

        if not existing:
            request = await ctx.directory.create_review_request(repo, branch, target, title, description)
            ctx.log.info("review_request_created", number=request.number, url=request.web_url)
            return request

        current = existing[0]
        await ctx.directory.update_review_request(repo, current.number, title, description)
        persisted = await ctx.directory.get_review_request(repo, current.number)

        if persisted.title != title or persisted.description.strip() != description.strip():
            raise ReviewUpdateError(
                f"Review request {current.number} in {repo.full_name} did not keep the update",
                branch=branch,
                count=1,
            )

        ctx.log.info("review_request_updated", number=persisted.number, url=persisted.web_url)
        return persisted
