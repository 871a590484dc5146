from dataclasses import dataclass
from typing import Optional


@dataclass
class RepoOrigin:
    """Where an approval request comes from."""

    repo: str
    branch: Optional[str] = None

    def to_dict(self) -> dict:
        origin = {"repo": self.repo}
        if self.branch:
            origin["branch"] = self.branch
        return origin
