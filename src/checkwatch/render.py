from datetime import datetime, timezone
from typing import Optional, Sequence

import humanize
from tabulate import tabulate

from checkwatch.checks.types import CheckConclusion, CheckRecord
from checkwatch.repository import GitHubRepository, PullRequest, pull_request_url

ICONS = {
    CheckConclusion.success: "✓",
    CheckConclusion.failure: "✗",
    CheckConclusion.pending: "…",
}


def select_initial_check(checks: Sequence[CheckRecord]) -> Optional[CheckRecord]:
    for check in checks:
        if check.conclusion == CheckConclusion.failure:
            return check
    return checks[0] if len(checks) > 0 else None


def check_url(
    check: CheckRecord,
    repository: GitHubRepository,
    pull_request: Optional[PullRequest] = None,
) -> str:
    # legacy statuses often have no page of their own
    if check.html_url is not None:
        return check.html_url
    if pull_request is not None:
        return pull_request_url(repository, pull_request)
    return repository.html_url or f"https://github.com/{repository.full_name}"


def describe_duration(check: CheckRecord, now: Optional[datetime] = None) -> str:
    if check.started_at is None:
        return ""
    now = now or datetime.now(timezone.utc)
    started_at = check.started_at
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    if check.completed_at is not None:
        completed_at = check.completed_at
        if completed_at.tzinfo is None:
            completed_at = completed_at.replace(tzinfo=timezone.utc)
        return (
            "completed "
            + humanize.naturaltime(now - completed_at)
            + " in "
            + humanize.naturaldelta(completed_at - started_at)
        )
    return "running for " + humanize.naturaldelta(now - started_at)


def render_checks(checks: Sequence[CheckRecord], now: Optional[datetime] = None) -> str:
    rows = []
    for check in checks:
        workflow = ""
        if check.logs_metadata is not None:
            workflow = check.logs_metadata.workflow_name or ""
        rows.append(
            (
                ICONS[check.conclusion],
                check.name,
                check.conclusion.value,
                workflow,
                describe_duration(check, now=now),
            )
        )
    return tabulate(
        rows,
        headers=("", "Check", "Status", "Workflow", "Duration"),
        tablefmt="github",
    )


def render_log(check: CheckRecord, errors_only: bool = False) -> str:
    metadata = check.logs_metadata
    if metadata is None or metadata.content is None:
        return check.description or ""
    if errors_only:
        return "\n".join(metadata.content.errors)
    out = []
    for section in metadata.content.sections:
        if section.title:
            out.append(f"## {section.title}")
        out.extend(section.lines)
    return "\n".join(out)
