import re

from prometheus_client import Counter

api_call_count = Counter(
    "checkwatch_num_api_calls",
    "Total number of GitHub API calls",
    labelnames=["endpoint"],
)

evaluation_counter = Counter(
    "checkwatch_evaluation_total",
    "Number of evaluation cycles by outcome",
    labelnames=["result"],
)

alert_counter = Counter(
    "checkwatch_alert_total",
    "Number of check alerts shown",
    labelnames=["conclusion"],
)

enrichment_lookup_counter = Counter(
    "checkwatch_enrichment_lookup_total",
    "Number of per-check enrichment lookups",
    labelnames=["phase", "result"],
)

_ENDPOINT_PATTERNS = [
    (re.compile(r"/commits/[^/]+/status$"), "status"),
    (re.compile(r"/commits/[^/]+/check-runs$"), "check-runs"),
    (re.compile(r"/actions/jobs/[^/]+/logs$"), "job-logs"),
    (re.compile(r"/actions/jobs/[^/]+$"), "jobs"),
    (re.compile(r"/pulls$"), "pulls"),
]


def _normalize_api_endpoint(url: str) -> str:
    path = url.split("?", 1)[0]
    for pattern, label in _ENDPOINT_PATTERNS:
        if pattern.search(path):
            return label
    return "other"


def record_api_call(endpoint: str) -> None:
    api_call_count.labels(endpoint=_normalize_api_endpoint(endpoint)).inc()
