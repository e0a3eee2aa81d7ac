from __future__ import annotations

import asyncio
import logging
from typing import (
    AsyncContextManager,
    Callable,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
)

from checkwatch import config
from checkwatch.accounts import Account, AccountStore, find_account_for_endpoint
from checkwatch.alert import AlertFactory, alert_factory_from_config
from checkwatch.checks import (
    CheckConclusion,
    CheckRecord,
    CombinedCheckResult,
    combine_raw,
)
from checkwatch.github.api import API, client_for_account
from checkwatch.github.model import CheckRun, CommitStatus
from checkwatch.metric import alert_counter, evaluation_counter
from checkwatch.repository import GitHubRepository, PullRequest, Repository

logger = logging.getLogger("checkwatch")

OnChecksFailedCallback = Callable[
    [Repository, PullRequest, Tuple[CheckRecord, ...]], None
]

ApiFactory = Callable[[Account], AsyncContextManager[API]]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


async def fetch_checks(
    api: API, owner: str, name: str, ref: str
) -> Tuple[Optional[Sequence[CommitStatus]], Optional[Sequence[CheckRun]]]:
    """
    Fetch commit statuses and check runs for ``ref`` concurrently.

    A failing request yields ``None`` for its side only.
    """
    status_result, check_runs_result = await asyncio.gather(
        api.get_combined_status(owner, name, ref),
        api.get_check_runs(owner, name, ref),
        return_exceptions=True,
    )

    statuses = None
    if isinstance(status_result, Exception):
        logger.debug("Fetching combined status failed: %s", status_result)
    else:
        statuses = status_result.statuses

    check_runs = None
    if isinstance(check_runs_result, Exception):
        logger.debug("Fetching check runs failed: %s", check_runs_result)
    else:
        check_runs = check_runs_result

    return statuses, check_runs


class RepositoryWatcher:
    """
    Watches at most one repository for pull request check results.

    Selecting a repository arms a single timer. When it fires, one evaluation
    cycle runs: the open pull request of the configured account is looked up,
    its commit statuses and check runs are fetched and combined, and an alert
    is shown. Clicking the alert hands the checks to the registered callback.
    The timer is not rearmed; callers select the repository again to schedule
    the next cycle.
    """

    def __init__(
        self,
        accounts: AccountStore,
        *,
        api_factory: ApiFactory = client_for_account,
        alert_factory: Optional[AlertFactory] = None,
        delay: float = config.EVALUATION_DELAY,
        on_checks_failed: Optional[OnChecksFailedCallback] = None,
        clock: Optional[Clock] = None,
    ):
        self.accounts = accounts
        self.api_factory = api_factory
        self.alert_factory = alert_factory or alert_factory_from_config()
        self.delay = max(0.0, float(delay))
        self._callback = on_checks_failed
        self._clock = clock
        self._repository: Optional[Repository] = None
        self._timer: Optional[TimerHandle] = None
        self._evaluations: Set[asyncio.Task] = set()
        self._disarmed = asyncio.Event()
        self._disarmed.set()

    @property
    def repository(self) -> Optional[Repository]:
        return self._repository

    @property
    def is_armed(self) -> bool:
        return self._timer is not None

    def on_checks_failed_notification(self, callback: OnChecksFailedCallback) -> None:
        if self._callback is not None and self._callback is not callback:
            logger.info("Replacing previously registered checks failed callback")
        self._callback = callback

    def select_repository(self, repository: Optional[Repository]) -> None:
        self._unsubscribe()

        if repository is None or not repository.has_github_repository:
            logger.debug("Not watching %s: no GitHub repository", repository)
            self._repository = None
            return

        self._subscribe(repository)

    async def drain(self) -> None:
        """Wait for the evaluation cycles that are currently running, if any."""
        if len(self._evaluations) > 0:
            await asyncio.gather(*self._evaluations, return_exceptions=True)

    async def wait(self) -> None:
        """
        Wait until the armed timer has fired or was cancelled, then for the
        cycles it started.
        """
        await self._disarmed.wait()
        await self.drain()

    async def close(self) -> None:
        self._unsubscribe()
        self._repository = None
        tasks = list(self._evaluations)
        for task in tasks:
            task.cancel()
        if len(tasks) > 0:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _unsubscribe(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._disarmed.set()

    def _subscribe(self, repository: Repository) -> None:
        self._unsubscribe()
        self._repository = repository
        clock = self._clock or asyncio.get_running_loop()
        logger.debug("Evaluating %s in %.1fs", repository.name, self.delay)
        self._timer = clock.call_later(self.delay, self._on_timer)
        self._disarmed.clear()

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._run_evaluation())
        self._evaluations.add(task)
        task.add_done_callback(self._evaluations.discard)
        self._disarmed.set()

    async def _run_evaluation(self) -> None:
        try:
            await self.evaluate()
        except asyncio.CancelledError:
            raise
        except Exception:
            evaluation_counter.labels(result="error").inc()
            logger.error("Evaluation cycle encountered error", exc_info=True)

    async def evaluate(self) -> Optional[CombinedCheckResult]:
        """
        Run one evaluation cycle for the watched repository.

        Returns the combined result when an alert was shown, ``None`` when the
        cycle was aborted.
        """
        repository = self._repository
        if repository is None or repository.github_repository is None:
            evaluation_counter.labels(result="no_repository").inc()
            return None

        gh_repo = repository.github_repository

        accounts = await self.accounts.get_all()
        account = find_account_for_endpoint(accounts, gh_repo.endpoint)
        if account is None:
            logger.debug("No account for endpoint %s", gh_repo.endpoint)
            evaluation_counter.labels(result="no_account").inc()
            return None

        async with self.api_factory(account) as api:
            try:
                pull_request = await self.resolve_pull_request(api, account, gh_repo)
            except Exception as e:
                logger.debug(
                    "Could not list pull requests for %s: %s", gh_repo.full_name, e
                )
                evaluation_counter.labels(result="fetch_failed").inc()
                return None

            if pull_request is None:
                logger.debug("No open pull request to check on %s", gh_repo.full_name)
                evaluation_counter.labels(result="no_pull_request").inc()
                return None

            statuses, check_runs = await fetch_checks(
                api, gh_repo.owner, gh_repo.name, pull_request.head.ref
            )

        if statuses is None and check_runs is None:
            evaluation_counter.labels(result="no_data").inc()
            return None

        result = combine_raw(statuses, check_runs)

        if result.is_empty:
            evaluation_counter.labels(result="no_checks").inc()
            return None

        self._post_alert(repository, pull_request, result)
        evaluation_counter.labels(result="alerted").inc()
        return result

    async def resolve_pull_request(
        self, api: API, account: Account, gh_repo: GitHubRepository
    ) -> Optional[PullRequest]:
        candidates: List[PullRequest] = [
            PullRequest.from_api(pr, gh_repo)
            async for pr in api.get_pulls(gh_repo.owner, gh_repo.name)
        ]
        if account.login is not None:
            candidates = [pr for pr in candidates if pr.author == account.login]
        if len(candidates) == 0:
            return None
        return max(
            candidates,
            key=lambda pr: pr.updated_at.timestamp()
            if pr.updated_at is not None
            else float("-inf"),
        )

    def _post_alert(
        self,
        repository: Repository,
        pull_request: PullRequest,
        result: CombinedCheckResult,
    ) -> None:
        title, body = alert_text(pull_request, result)
        alert = self.alert_factory(title, body)
        checks = result.checks

        def on_click():
            self._notify(repository, pull_request, checks)

        alert.on_click(on_click)
        alert_counter.labels(conclusion=result.overall_conclusion.value).inc()
        alert.show()

    def _notify(
        self,
        repository: Repository,
        pull_request: PullRequest,
        checks: Tuple[CheckRecord, ...],
    ) -> None:
        if self._callback is None:
            logger.debug("Alert for %s clicked, no callback registered", pull_request)
            return
        self._callback(repository, pull_request, checks)


def alert_text(
    pull_request: PullRequest, result: CombinedCheckResult
) -> Tuple[str, str]:
    sha = pull_request.head.sha[:7]
    header = f"{pull_request.title} #{pull_request.number} ({sha})"

    if result.overall_conclusion == CheckConclusion.failure:
        failed = ", ".join(c.name for c in result.failures)
        return "PR run failed", f"{header}\n{failed}: some jobs were not successful."
    if result.overall_conclusion == CheckConclusion.pending:
        waiting = len(
            [c for c in result.checks if c.conclusion == CheckConclusion.pending]
        )
        total = len(result.checks)
        return "PR checks pending", f"{header}\nWaiting for {waiting} of {total}."
    return "PR checks passed", f"{header}\nAll {len(result.checks)} checks passed."
