from datetime import datetime
from typing import List, Literal, Optional

import pydantic


class Model(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="ignore")


class App(Model):
    id: Optional[int] = None
    slug: Optional[str] = None


class Repository(Model):
    id: int
    name: str
    full_name: Optional[str] = None
    url: str
    html_url: Optional[str] = None
    private: Optional[bool] = None


class User(Model):
    login: str


class PrConnection(Model):
    ref: str
    sha: str
    label: Optional[str] = None
    repo: Optional[Repository] = None


class PullRequest(Model):
    id: int
    number: int
    title: str = ""
    state: Literal["open", "closed"] = "open"
    draft: bool = False
    user: Optional[User] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    base: PrConnection
    head: PrConnection
    html_url: Optional[str] = None

    def __str__(self) -> str:
        return f"PR(#{self.number}, {self.id})"


class CheckRunOutput(Model):
    title: Optional[str] = None
    summary: Optional[str] = None
    text: Optional[str] = None


class CheckRun(Model):
    id: Optional[int] = None
    name: str
    head_sha: Optional[str] = None
    status: str = "queued"
    conclusion: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    app: Optional[App] = None
    output: Optional[CheckRunOutput] = None
    html_url: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"


class CommitStatus(Model):
    id: Optional[int] = None
    url: Optional[str] = None
    target_url: Optional[str] = None
    description: Optional[str] = None
    state: str
    context: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CombinedStatus(Model):
    state: Optional[str] = None
    sha: Optional[str] = None
    total_count: int = 0
    statuses: List[CommitStatus] = pydantic.Field(default_factory=list)


class ActionsStep(Model):
    name: str
    number: int
    status: str
    conclusion: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ActionsJob(Model):
    id: int
    run_id: int
    run_url: Optional[str] = None
    url: Optional[str] = None
    html_url: Optional[str] = None
    head_branch: Optional[str] = None
    workflow_name: Optional[str] = None
    status: str
    conclusion: Optional[str] = None
    name: str
    run_attempt: int = 1
    steps: List[ActionsStep] = pydantic.Field(default_factory=list)
