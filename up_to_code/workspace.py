"""Throwaway git working copies, one per repository per run."""

import shutil
import subprocess
from pathlib import Path

import structlog

from up_to_code.exceptions import GitOperationError
from up_to_code.utils.async_subprocess import mask_credentials, run_command

log = structlog.get_logger(__name__)


class GitWorkspace:
    """A shallow clone used to branch, bump, commit and push.

    The directory is wiped before every clone, so a workspace never
    carries state from an earlier run or another repository.

    Args:
        path: Clone location, e.g. ``repos/gitlab/web``
        timeout: Seconds allowed per git command
    """

    def __init__(self, path: Path, timeout: float | None = None) -> None:
        self.path = path
        self.timeout = timeout

    async def _git(self, *args: str, cwd: Path | None = None) -> str:
        try:
            stdout, _, _ = await run_command("git", *args, cwd=cwd or self.path, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            raise GitOperationError(f"git {args[0]} failed", command=args[0], stderr=e.stderr) from e
        except TimeoutError as e:
            raise GitOperationError(f"git {args[0]} timed out after {self.timeout}s", command=args[0]) from e
        return stdout

    async def clone(self, url: str, depth: int = 1) -> None:
        """Clone ``url`` into a fresh directory."""
        if self.path.exists():
            shutil.rmtree(self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        log.info("cloning_repository", url=mask_credentials(url), path=str(self.path))
        await self._git("clone", "--depth", str(depth), url, str(self.path), cwd=self.path.parent)

    async def checkout_branch(self, name: str) -> None:
        """Create or reset ``name`` at the current HEAD and switch to it."""
        await self._git("checkout", "-B", name)

    async def commit_all(self, message: str) -> None:
        """Commit every tracked modification."""
        await self._git("commit", "-a", "-m", message)

    async def push(self, force: bool = True) -> None:
        """Push HEAD to the same-named branch on origin, setting upstream.

        The update branch is owned by this tool, so it is force-pushed:
        each run rebuilds it from the current default branch.
        """
        args = ["push", "-u", "origin", "HEAD"]
        if force:
            args.insert(1, "-f")
        await self._git(*args)

    async def head_revision(self) -> str:
        """SHA of the current HEAD."""
        return (await self._git("rev-parse", "HEAD")).strip()
