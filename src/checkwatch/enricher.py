from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
import logging
from typing import Callable, Optional, Protocol, Sequence, Tuple

from aiolimiter import AsyncLimiter

from checkwatch import config
from checkwatch.checks.logs import parse_actions_log
from checkwatch.checks.types import CheckRecord, CheckSource, JobStep, LogsMetadata
from checkwatch.github.api import job_logs_url
from checkwatch.github.model import ActionsJob
from checkwatch.metric import enrichment_lookup_counter

logger = logging.getLogger("checkwatch")

ACTIONS_APP_SLUG = "github-actions"


class LogsAPI(Protocol):
    async def get_actions_job(self, owner: str, name: str, id: int) -> ActionsJob: ...

    async def get_job_logs(self, url: str) -> str: ...


class EnrichmentPhase(Enum):
    workflows_loading = "workflows-loading"
    logs_loading = "logs-loading"
    done = "done"


@dataclass(frozen=True)
class EnrichmentState:
    phase: EnrichmentPhase
    checks: Tuple[CheckRecord, ...]
    generation: int = 0

    @property
    def loading_workflows(self) -> bool:
        return self.phase == EnrichmentPhase.workflows_loading

    @property
    def loading_logs(self) -> bool:
        return self.phase != EnrichmentPhase.done


def _make_limiter(rate: float) -> Optional[AsyncLimiter]:
    if rate <= 0:
        return None
    if rate < 1:
        return AsyncLimiter(1, 1 / rate)
    return AsyncLimiter(rate, 1)


def is_actions_check(check: CheckRecord) -> bool:
    return (
        check.source == CheckSource.check_run
        and check.check_run_id is not None
        and check.app_slug in (None, ACTIONS_APP_SLUG)
    )


async def _attach_job(
    api: LogsAPI, owner: str, name: str, ref: str, check: CheckRecord
) -> CheckRecord:
    job = await api.get_actions_job(owner, name, check.check_run_id)
    if job.head_branch is not None and job.head_branch != ref:
        logger.debug(
            "Job %d of %s ran on %s, not %s", job.id, check.name, job.head_branch, ref
        )
        return check
    metadata = LogsMetadata(
        job_id=job.id,
        run_id=job.run_id,
        log_url=job_logs_url(owner, name, job.id),
        workflow_name=job.workflow_name,
        job_html_url=job.html_url,
        steps=tuple(
            JobStep(name=s.name, number=s.number, conclusion=s.conclusion)
            for s in job.steps
        ),
    )
    return replace(check, logs_metadata=metadata)


async def get_check_run_jobs_and_log_urls(
    api: LogsAPI,
    owner: str,
    name: str,
    ref: str,
    checks: Sequence[CheckRecord],
) -> Tuple[CheckRecord, ...]:
    """
    Attach Actions job metadata and a log URL to every check run that came
    from a GitHub Actions job. Checks whose job cannot be loaded are returned
    unchanged.
    """

    async def lookup(check: CheckRecord) -> CheckRecord:
        if not is_actions_check(check):
            return check
        try:
            enriched = await _attach_job(api, owner, name, ref, check)
        except Exception as e:
            logger.debug("No Actions job for %s: %s", check.name, e)
            enrichment_lookup_counter.labels(phase="workflows", result="error").inc()
            return check
        enrichment_lookup_counter.labels(phase="workflows", result="ok").inc()
        return enriched

    return tuple(await asyncio.gather(*(lookup(c) for c in checks)))


async def get_check_run_logs(
    api: LogsAPI,
    checks: Sequence[CheckRecord],
    limiter: Optional[AsyncLimiter] = None,
) -> Tuple[CheckRecord, ...]:
    """Fetch and parse the job log of every check that carries a log URL."""

    async def fetch(check: CheckRecord) -> CheckRecord:
        metadata = check.logs_metadata
        if metadata is None:
            return check
        try:
            if limiter is not None:
                async with limiter:
                    text = await api.get_job_logs(metadata.log_url)
            else:
                text = await api.get_job_logs(metadata.log_url)
            content = parse_actions_log(text)
        except Exception as e:
            logger.debug("Could not load logs for %s: %s", check.name, e)
            enrichment_lookup_counter.labels(phase="logs", result="error").inc()
            return check
        enrichment_lookup_counter.labels(phase="logs", result="ok").inc()
        return replace(check, logs_metadata=replace(metadata, content=content))

    return tuple(await asyncio.gather(*(fetch(c) for c in checks)))


class CheckLogsEnricher:
    """
    Progressively attaches job and log details to a list of checks.

    Each call to :meth:`start` begins a new invocation and publishes
    ``workflows-loading`` with the checks as given, ``logs-loading`` once the
    Actions jobs are known and ``done`` once the logs have been parsed. After
    :meth:`teardown`, or once a newer invocation started, the results of the
    older invocation are dropped.
    """

    def __init__(
        self,
        api: LogsAPI,
        publish: Optional[Callable[[EnrichmentState], None]] = None,
        *,
        rate: float = config.LOG_FETCH_RATE,
    ):
        self.api = api
        self.publish = publish
        self.limiter = _make_limiter(rate)
        self._generation = 0
        self.state: Optional[EnrichmentState] = None

    @property
    def generation(self) -> int:
        return self._generation

    def start(
        self, owner: str, name: str, ref: str, checks: Sequence[CheckRecord]
    ) -> asyncio.Task:
        self._generation += 1
        generation = self._generation
        self._apply(
            EnrichmentState(
                phase=EnrichmentPhase.workflows_loading,
                checks=tuple(checks),
                generation=generation,
            )
        )
        return asyncio.ensure_future(
            self._run(generation, owner, name, ref, tuple(checks))
        )

    def teardown(self) -> None:
        self._generation += 1
        self.state = None

    def _apply(self, state: EnrichmentState) -> bool:
        if state.generation != self._generation:
            logger.debug(
                "Discarding stale %s result of invocation %d",
                state.phase.value,
                state.generation,
            )
            return False
        self.state = state
        if self.publish is not None:
            self.publish(state)
        return True

    async def _run(
        self,
        generation: int,
        owner: str,
        name: str,
        ref: str,
        checks: Tuple[CheckRecord, ...],
    ) -> Optional[EnrichmentState]:
        with_jobs = await get_check_run_jobs_and_log_urls(
            self.api, owner, name, ref, checks
        )
        if not self._apply(
            EnrichmentState(
                phase=EnrichmentPhase.logs_loading,
                checks=with_jobs,
                generation=generation,
            )
        ):
            return None

        with_logs = await get_check_run_logs(self.api, with_jobs, self.limiter)
        final = EnrichmentState(
            phase=EnrichmentPhase.done, checks=with_logs, generation=generation
        )
        if not self._apply(final):
            return None
        return final
