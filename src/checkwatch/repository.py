from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from checkwatch.github.model import PullRequest as APIPullRequest


@dataclass(frozen=True)
class GitHubRepository:
    owner: str
    name: str
    endpoint: str = "https://api.github.com"
    html_url: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class Repository:
    """A local repository, optionally backed by a GitHub remote."""

    name: str
    github_repository: GitHubRepository | None = None

    @property
    def has_github_repository(self) -> bool:
        return self.github_repository is not None


@dataclass(frozen=True)
class PullRequestRef:
    ref: str
    sha: str
    repository: GitHubRepository | None = None


@dataclass(frozen=True)
class PullRequest:
    title: str
    number: int
    head: PullRequestRef
    base: PullRequestRef
    author: str | None = None
    draft: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __str__(self) -> str:
        return f"PR(#{self.number} {self.title!r})"

    @classmethod
    def from_api(
        cls, pr: APIPullRequest, repository: GitHubRepository
    ) -> PullRequest:
        return cls(
            title=pr.title,
            number=pr.number,
            head=PullRequestRef(pr.head.ref, pr.head.sha, repository),
            base=PullRequestRef(pr.base.ref, pr.base.sha, repository),
            author=pr.user.login if pr.user is not None else None,
            draft=pr.draft,
            created_at=pr.created_at,
            updated_at=pr.updated_at,
        )


def pull_request_url(repository: GitHubRepository, pull_request: PullRequest) -> str:
    base = repository.html_url or f"https://github.com/{repository.full_name}"
    return f"{base}/pull/{pull_request.number}"
