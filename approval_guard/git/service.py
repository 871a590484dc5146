"""Git lookups used to describe where an approval request originates."""

import asyncio
import re
from pathlib import Path
from typing import Optional

from loguru import logger

from .models import RepoOrigin

# Matches the trailing "owner/name" of https, ssh and scp-style remote URLs
_REMOTE_RE = re.compile(r"[:/](?P<owner>[^/:]+)/(?P<name>[^/]+?)(?:\.git)?/?$")


class GitError(Exception):
    """Raised when git operation fails."""

    pass


def repo_name_from_remote(remote_url: str) -> Optional[str]:
    """Reduce a remote URL to ``owner/name``, or None if it has no such shape."""
    match = _REMOTE_RE.search(remote_url.strip())
    if not match:
        return None
    return f"{match.group('owner')}/{match.group('name')}"


class GitService:
    """Read-only git queries for request origin metadata."""

    def __init__(self, timeout: int = 10):
        self.timeout = timeout

    def _validate_working_directory(self, working_directory: str) -> None:
        """Validate that working directory exists and is a directory."""
        path = Path(working_directory).expanduser().resolve()
        if not path.exists():
            raise GitError(f"Directory does not exist: {working_directory}")
        if not path.is_dir():
            raise GitError(f"Not a directory: {working_directory}")

    async def _run_git_command(self, working_directory: str, *args: str) -> tuple[str, str, int]:
        """Run a git command and return (stdout, stderr, returncode)."""
        self._validate_working_directory(working_directory)
        process = None
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=working_directory,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )

            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )

            stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
            stderr = stderr_bytes.decode("utf-8", errors="replace").strip()

            returncode = process.returncode if process.returncode is not None else -1
            return stdout, stderr, returncode

        except asyncio.TimeoutError:
            if process:
                process.kill()
                await process.wait()
            logger.error(f"Git command timed out: git {' '.join(args)}")
            raise GitError("Git command timed out")
        except OSError as e:
            logger.error(f"Git command failed: {e}")
            raise GitError(f"Git command failed: {e}")

    async def validate_git_repo(self, working_directory: str) -> bool:
        """Check if directory is a git repository."""
        try:
            _, _, returncode = await self._run_git_command(
                working_directory, "rev-parse", "--git-dir"
            )
            return returncode == 0
        except GitError:
            return False

    async def get_current_branch(self, working_directory: str) -> Optional[str]:
        """Current branch name, or None on a detached HEAD."""
        stdout, stderr, returncode = await self._run_git_command(
            working_directory, "branch", "--show-current"
        )
        if returncode != 0:
            raise GitError(f"Failed to get current branch: {stderr}")
        return stdout or None

    async def get_repo_name(self, working_directory: str) -> str:
        """Repository name from the origin remote, else the top-level directory name."""
        stdout, _, returncode = await self._run_git_command(
            working_directory, "remote", "get-url", "origin"
        )
        if returncode == 0 and stdout:
            name = repo_name_from_remote(stdout)
            if name:
                return name

        toplevel, stderr, returncode = await self._run_git_command(
            working_directory, "rev-parse", "--show-toplevel"
        )
        if returncode != 0:
            raise GitError(f"Failed to resolve repository root: {stderr}")
        return Path(toplevel).name

    async def get_origin(self, working_directory: str) -> RepoOrigin:
        """Describe the repository and branch a request is made from.

        Falls back to the directory name without a branch when the directory
        is not a git repository or git is unavailable.
        """
        fallback = RepoOrigin(repo=Path(working_directory).expanduser().resolve().name)
        if not await self.validate_git_repo(working_directory):
            return fallback

        try:
            repo = await self.get_repo_name(working_directory)
            branch = await self.get_current_branch(working_directory)
        except GitError as e:
            logger.warning(f"Could not read git origin for {working_directory}: {e}")
            return fallback
        return RepoOrigin(repo=repo, branch=branch)
