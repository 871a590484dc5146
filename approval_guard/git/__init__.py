"""Git integration for request origin metadata."""

from .models import RepoOrigin
from .service import GitError, GitService

__all__ = ["GitError", "GitService", "RepoOrigin"]
