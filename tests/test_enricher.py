import asyncio

import pytest

from checkwatch.checks import CheckConclusion, CheckRecord, CheckSource
from checkwatch.enricher import (
    CheckLogsEnricher,
    EnrichmentPhase,
    get_check_run_jobs_and_log_urls,
    get_check_run_logs,
    is_actions_check,
)
from checkwatch.github.model import ActionsJob

LOG = """\
2026-02-17T10:00:00.0000000Z ##[group]Run pytest
2026-02-17T10:00:00.1000000Z pytest -q
2026-02-17T10:00:00.2000000Z ##[endgroup]
2026-02-17T10:00:01.0000000Z FAILED tests/test_x.py::test_y
2026-02-17T10:00:02.0000000Z ##[error]Process completed with exit code 1.
"""


def _job(id, name, head_branch="feature"):
    return ActionsJob.model_validate(
        {
            "id": id,
            "run_id": 900 + id,
            "name": name,
            "status": "completed",
            "conclusion": "failure",
            "head_branch": head_branch,
            "workflow_name": "CI",
            "html_url": f"https://github.com/org/repo/actions/runs/{900 + id}/job/{id}",
            "steps": [
                {"name": "Run pytest", "number": 1, "status": "completed", "conclusion": "failure"}
            ],
        }
    )


def _check(name, check_run_id, *, app_slug="github-actions", source=CheckSource.check_run):
    return CheckRecord(
        id=f"check-run-{check_run_id}",
        name=name,
        conclusion=CheckConclusion.failure,
        source=source,
        check_run_id=check_run_id,
        app_slug=app_slug,
    )


class _FakeLogsAPI:
    def __init__(self, jobs=None, logs=None, gate=None, job_delay=0.0):
        self.jobs = jobs or {}
        self.logs = logs or {}
        self.gate = gate
        self.job_delay = job_delay
        self.job_calls = []
        self.log_calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_actions_job(self, owner, name, id):
        self.job_calls.append((owner, name, id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.job_delay)
            job = self.jobs.get(id)
            if job is None:
                raise LookupError(f"no job {id}")
            return job
        finally:
            self.in_flight -= 1

    async def get_job_logs(self, url):
        self.log_calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        text = self.logs.get(url)
        if text is None:
            raise LookupError(f"no logs at {url}")
        return text


async def _wait_for_phase(enricher, phase):
    async def poll():
        while enricher.state is None or enricher.state.phase != phase:
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout=1)


def test_only_actions_check_runs_are_looked_up():
    assert is_actions_check(_check("build", 1))
    assert is_actions_check(_check("build", 1, app_slug=None))
    assert not is_actions_check(_check("codecov", 1, app_slug="codecov"))
    assert not is_actions_check(_check("ci/test", None, source=CheckSource.status))


@pytest.mark.asyncio
async def test_progressive_enrichment_of_build_and_lint():
    api = _FakeLogsAPI(
        jobs={1: _job(1, "build")},
        logs={"/repos/org/repo/actions/jobs/1/logs": LOG},
    )
    states = []
    enricher = CheckLogsEnricher(api, publish=states.append, rate=0)
    build = _check("build", 1)
    lint = _check("lint", 2)

    final = await enricher.start("org", "repo", "feature", [build, lint])

    assert [s.phase for s in states] == [
        EnrichmentPhase.workflows_loading,
        EnrichmentPhase.logs_loading,
        EnrichmentPhase.done,
    ]
    assert states[0].checks == (build, lint)
    assert states[0].loading_workflows and states[0].loading_logs

    workflows_build, workflows_lint = states[1].checks
    assert workflows_build.has_log_url
    assert not workflows_build.has_log_content
    assert workflows_build.logs_metadata.log_url == "/repos/org/repo/actions/jobs/1/logs"
    assert workflows_build.logs_metadata.workflow_name == "CI"
    assert workflows_build.logs_metadata.run_id == 901
    assert [s.name for s in workflows_build.logs_metadata.steps] == ["Run pytest"]
    assert workflows_lint == lint
    assert not states[1].loading_workflows and states[1].loading_logs

    done_build, done_lint = final.checks
    assert final is states[2]
    assert enricher.state is final
    assert done_build.has_log_content
    content = done_build.logs_metadata.content
    assert content.errors == ("Process completed with exit code 1.",)
    assert content.sections[0].title == "Run pytest"
    assert done_lint == lint
    assert not done_lint.has_log_content
    assert api.log_calls == ["/repos/org/repo/actions/jobs/1/logs"]


@pytest.mark.asyncio
async def test_teardown_discards_stale_logs_phase():
    gate = asyncio.Event()
    api = _FakeLogsAPI(
        jobs={1: _job(1, "build"), 3: _job(3, "test")},
        logs={
            "/repos/org/repo/actions/jobs/1/logs": LOG,
            "/repos/org/repo/actions/jobs/3/logs": LOG,
        },
        gate=gate,
    )
    states = []
    enricher = CheckLogsEnricher(api, publish=states.append, rate=0)

    first = enricher.start("org", "repo", "feature", [_check("build", 1)])
    await _wait_for_phase(enricher, EnrichmentPhase.logs_loading)

    enricher.teardown()
    assert enricher.state is None

    second = enricher.start("org", "repo", "feature", [_check("test", 3)])
    gate.set()
    first_result, second_result = await asyncio.gather(first, second)

    assert first_result is None
    assert second_result is not None
    assert enricher.state is second_result
    assert enricher.state.generation == enricher.generation
    assert [c.name for c in enricher.state.checks] == ["test"]
    assert not any(
        s.generation == 1 and s.phase == EnrichmentPhase.done for s in states
    )
    assert [s.generation for s in states[:2]] == [1, 1]
    assert all(s.generation == enricher.generation for s in states[2:])
    assert [s.phase for s in states[2:]] == [
        EnrichmentPhase.workflows_loading,
        EnrichmentPhase.logs_loading,
        EnrichmentPhase.done,
    ]


@pytest.mark.asyncio
async def test_teardown_during_workflows_phase_publishes_nothing_more():
    api = _FakeLogsAPI(jobs={1: _job(1, "build")}, job_delay=0.01)
    states = []
    enricher = CheckLogsEnricher(api, publish=states.append, rate=0)

    task = enricher.start("org", "repo", "feature", [_check("build", 1)])
    enricher.teardown()

    assert await task is None
    assert [s.phase for s in states] == [EnrichmentPhase.workflows_loading]
    assert api.log_calls == []
    assert enricher.state is None


@pytest.mark.asyncio
async def test_job_lookups_run_concurrently():
    api = _FakeLogsAPI(jobs={1: _job(1, "build"), 2: _job(2, "lint")}, job_delay=0.01)

    checks = await get_check_run_jobs_and_log_urls(
        api, "org", "repo", "feature", [_check("build", 1), _check("lint", 2)]
    )

    assert api.max_in_flight == 2
    assert all(c.has_log_url for c in checks)


@pytest.mark.asyncio
async def test_jobs_for_other_branches_are_ignored():
    api = _FakeLogsAPI(jobs={1: _job(1, "build", head_branch="main")})
    build = _check("build", 1)

    checks = await get_check_run_jobs_and_log_urls(api, "org", "repo", "feature", [build])

    assert checks == (build,)


@pytest.mark.asyncio
async def test_non_actions_checks_are_passed_through():
    api = _FakeLogsAPI()
    status = _check("ci/test", None, source=CheckSource.status, app_slug=None)
    external = _check("codecov", 5, app_slug="codecov")

    checks = await get_check_run_jobs_and_log_urls(
        api, "org", "repo", "feature", [status, external]
    )

    assert checks == (status, external)
    assert api.job_calls == []


@pytest.mark.asyncio
async def test_failing_log_fetch_degrades_to_no_content():
    api = _FakeLogsAPI(
        jobs={1: _job(1, "build"), 2: _job(2, "lint")},
        logs={"/repos/org/repo/actions/jobs/2/logs": LOG},
    )
    with_jobs = await get_check_run_jobs_and_log_urls(
        api, "org", "repo", "feature", [_check("build", 1), _check("lint", 2)]
    )

    build, lint = await get_check_run_logs(api, with_jobs)

    assert build == with_jobs[0]
    assert build.has_log_url and not build.has_log_content
    assert lint.has_log_content
