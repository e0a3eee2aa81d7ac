from checkwatch.checks.combine import (
    check_run_to_check,
    combine_checks,
    combine_raw,
    latest_check_runs_by_name,
    overall_conclusion,
    status_to_check,
)
from checkwatch.checks.types import (
    CheckConclusion,
    CheckRecord,
    CheckSource,
    CombinedCheckResult,
    LogsMetadata,
)

__all__ = [
    "CheckConclusion",
    "CheckRecord",
    "CheckSource",
    "CombinedCheckResult",
    "LogsMetadata",
    "check_run_to_check",
    "combine_checks",
    "combine_raw",
    "latest_check_runs_by_name",
    "overall_conclusion",
    "status_to_check",
]
