from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence

from checkwatch.checks.types import (
    CheckConclusion,
    CheckRecord,
    CheckSource,
    CombinedCheckResult,
)
from checkwatch.github.model import CheckRun, CommitStatus

logger = logging.getLogger("checkwatch")

STATUS_CONCLUSIONS: Mapping[str, CheckConclusion] = {
    "success": CheckConclusion.success,
    "failure": CheckConclusion.failure,
    "error": CheckConclusion.failure,
    "pending": CheckConclusion.pending,
}

CHECK_RUN_CONCLUSIONS: Mapping[str, CheckConclusion] = {
    "success": CheckConclusion.success,
    "failure": CheckConclusion.failure,
    "timed_out": CheckConclusion.failure,
    "cancelled": CheckConclusion.failure,
    "action_required": CheckConclusion.failure,
    "startup_failure": CheckConclusion.failure,
    "neutral": CheckConclusion.pending,
    "skipped": CheckConclusion.pending,
    "stale": CheckConclusion.pending,
}


def status_to_check(status: CommitStatus) -> CheckRecord:
    conclusion = STATUS_CONCLUSIONS.get(status.state, CheckConclusion.pending)
    key = status.id if status.id is not None else status.context
    completed_at = None
    if conclusion != CheckConclusion.pending:
        completed_at = status.updated_at
    return CheckRecord(
        id=f"status-{key}",
        name=status.context,
        conclusion=conclusion,
        source=CheckSource.status,
        html_url=status.target_url,
        started_at=status.created_at,
        completed_at=completed_at,
        description=status.description,
    )


def check_run_to_check(check_run: CheckRun) -> CheckRecord:
    if not check_run.is_completed or check_run.conclusion is None:
        conclusion = CheckConclusion.pending
    else:
        conclusion = CHECK_RUN_CONCLUSIONS.get(
            check_run.conclusion, CheckConclusion.pending
        )
    key = check_run.id if check_run.id is not None else check_run.name
    description = None
    if check_run.output is not None:
        description = check_run.output.title or check_run.output.summary
    return CheckRecord(
        id=f"check-run-{key}",
        name=check_run.name,
        conclusion=conclusion,
        source=CheckSource.check_run,
        html_url=check_run.html_url,
        started_at=check_run.started_at,
        completed_at=check_run.completed_at,
        description=description,
        check_run_id=check_run.id,
        app_slug=check_run.app.slug if check_run.app is not None else None,
    )


def _is_more_recent(candidate: CheckRun, current: CheckRun) -> bool:
    # later position wins unless both timestamps exist and disagree
    if candidate.started_at is None or current.started_at is None:
        return True
    if candidate.started_at == current.started_at:
        return True
    return candidate.started_at > current.started_at


def latest_check_runs_by_name(check_runs: Iterable[CheckRun]) -> List[CheckRun]:
    """
    Keep the most recent check run per name.

    Reruns of a check share its name. The run that started last is kept; when
    that cannot be decided, the one appearing later in the input is. The result
    keeps the order in which each name was first seen.
    """
    latest: Dict[str, CheckRun] = {}
    for cr in check_runs:
        if ex_cr := latest.get(cr.name):
            if _is_more_recent(cr, ex_cr):
                latest[cr.name] = cr
        else:
            latest[cr.name] = cr
    return list(latest.values())


def overall_conclusion(checks: Iterable[CheckRecord]) -> CheckConclusion:
    conclusions = {c.conclusion for c in checks}
    if CheckConclusion.failure in conclusions:
        return CheckConclusion.failure
    if CheckConclusion.pending in conclusions or len(conclusions) == 0:
        return CheckConclusion.pending
    return CheckConclusion.success


def combine_checks(
    statuses: Sequence[CheckRecord], check_runs: Sequence[CheckRecord]
) -> CombinedCheckResult:
    checks = tuple(statuses) + tuple(check_runs)
    if len(checks) == 0:
        return CombinedCheckResult.empty()
    return CombinedCheckResult(
        overall_conclusion=overall_conclusion(checks), checks=checks
    )


def combine_raw(
    statuses: Sequence[CommitStatus] | None, check_runs: Sequence[CheckRun] | None
) -> CombinedCheckResult:
    """Normalize, deduplicate and combine raw statuses and check runs."""
    status_checks = [status_to_check(s) for s in statuses or []]
    run_checks = [
        check_run_to_check(cr) for cr in latest_check_runs_by_name(check_runs or [])
    ]
    logger.debug(
        "Combining %d statuses and %d check runs", len(status_checks), len(run_checks)
    )
    return combine_checks(status_checks, run_checks)
