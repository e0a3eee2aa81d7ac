from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Tuple


class CheckConclusion(Enum):
    success = "success"
    failure = "failure"
    pending = "pending"


class CheckSource(Enum):
    status = "status"
    check_run = "check_run"


@dataclass(frozen=True)
class JobStep:
    name: str
    number: int
    conclusion: str | None = None


@dataclass(frozen=True)
class LogSection:
    title: str
    lines: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedLog:
    sections: Tuple[LogSection, ...] = ()
    errors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LogsMetadata:
    job_id: int
    run_id: int
    log_url: str
    workflow_name: str | None = None
    job_html_url: str | None = None
    steps: Tuple[JobStep, ...] = ()
    content: ParsedLog | None = None


@dataclass(frozen=True)
class CheckRecord:
    id: str
    name: str
    conclusion: CheckConclusion
    source: CheckSource
    html_url: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    description: str | None = None
    check_run_id: int | None = None
    app_slug: str | None = None
    logs_metadata: LogsMetadata | None = None

    @property
    def has_log_url(self) -> bool:
        return self.logs_metadata is not None

    @property
    def has_log_content(self) -> bool:
        return self.logs_metadata is not None and self.logs_metadata.content is not None


@dataclass(frozen=True)
class CombinedCheckResult:
    overall_conclusion: CheckConclusion
    checks: Tuple[CheckRecord, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> CombinedCheckResult:
        return cls(overall_conclusion=CheckConclusion.pending, checks=())

    @property
    def is_empty(self) -> bool:
        return len(self.checks) == 0

    @property
    def failures(self) -> Tuple[CheckRecord, ...]:
        return tuple(
            c for c in self.checks if c.conclusion == CheckConclusion.failure
        )
