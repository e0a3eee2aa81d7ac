import asyncio
import logging
from typing import Callable, Optional, Sequence, Set, Tuple

import typer

from checkwatch import config
from checkwatch.accounts import (
    Account,
    AccountStore,
    StaticAccountStore,
    find_account_for_endpoint,
)
from checkwatch.alert import alert_factory_from_config
from checkwatch.checks import CheckConclusion, CheckRecord, combine_raw
from checkwatch.enricher import CheckLogsEnricher, EnrichmentState
from checkwatch.github.api import client_for_account
from checkwatch.logger import get_log_handlers
from checkwatch.render import (
    check_url,
    render_checks,
    render_log,
    select_initial_check,
)
from checkwatch.repository import GitHubRepository, PullRequest, Repository
from checkwatch.watcher import ApiFactory, RepositoryWatcher, fetch_checks


logging.basicConfig(
    format="%(asctime)s %(name)s %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger("checkwatch")

app = typer.Typer()


@app.callback()
def init():
    logging.getLogger().setLevel(config.OVERRIDE_LOGGING)
    logger.setLevel(config.OVERRIDE_LOGGING)
    get_log_handlers(logger)


def parse_repository(repo: str) -> GitHubRepository:
    owner, _, name = repo.partition("/")
    if not owner or not name or "/" in name:
        raise typer.BadParameter(f"Expected OWNER/NAME, got '{repo}'")
    return GitHubRepository(
        owner=owner,
        name=name,
        endpoint=config.GITHUB_ENDPOINT,
        html_url=f"https://github.com/{owner}/{name}",
    )


async def _account_for(gh_repo: GitHubRepository) -> Account:
    accounts = await StaticAccountStore.from_config().get_all()
    account = find_account_for_endpoint(accounts, gh_repo.endpoint)
    if account is None:
        typer.echo(f"No account configured for {gh_repo.endpoint}", err=True)
        raise typer.Exit(1)
    return account


def _print_state(state: EnrichmentState) -> None:
    typer.echo(f"[{state.phase.value}]")
    typer.echo(render_checks(state.checks))


def _print_check(
    check: CheckRecord,
    gh_repo: GitHubRepository,
    pull_request: Optional[PullRequest] = None,
    errors_only: bool = False,
) -> None:
    typer.echo(f"\n{check.name}: {check_url(check, gh_repo, pull_request)}")
    typer.echo(render_log(check, errors_only=errors_only))


class ChecksInspector:
    """
    Loads workflow jobs and logs for the checks of a clicked alert and prints
    them, starting with the first failing check.
    """

    def __init__(
        self,
        accounts: AccountStore,
        *,
        api_factory: ApiFactory = client_for_account,
        publish: Optional[Callable[[EnrichmentState], None]] = _print_state,
    ):
        self.accounts = accounts
        self.api_factory = api_factory
        self.publish = publish
        self.tasks: Set[asyncio.Task] = set()

    def __call__(
        self,
        repository: Repository,
        pull_request: PullRequest,
        checks: Tuple[CheckRecord, ...],
    ) -> None:
        task = asyncio.ensure_future(self._run(repository, pull_request, checks))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def drain(self) -> None:
        if len(self.tasks) > 0:
            await asyncio.gather(*self.tasks, return_exceptions=True)

    async def _run(self, repository, pull_request, checks) -> None:
        try:
            await self.inspect(repository, pull_request, checks)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("Loading logs for %s failed", pull_request, exc_info=True)

    async def inspect(
        self,
        repository: Repository,
        pull_request: PullRequest,
        checks: Sequence[CheckRecord],
    ) -> Optional[EnrichmentState]:
        gh_repo = repository.github_repository
        if gh_repo is None:
            return None
        accounts = await self.accounts.get_all()
        account = find_account_for_endpoint(accounts, gh_repo.endpoint)
        if account is None:
            logger.warning("No account for endpoint %s", gh_repo.endpoint)
            return None

        async with self.api_factory(account) as api:
            enricher = CheckLogsEnricher(api, publish=self.publish)
            state = await enricher.start(
                gh_repo.owner, gh_repo.name, pull_request.head.ref, checks
            )

        if state is None:
            return None
        selected = select_initial_check(state.checks)
        if selected is not None:
            _print_check(selected, gh_repo, pull_request)
        return state


async def watch_loop(
    repository: Repository, delay: float, interval: float, once: bool
) -> None:
    accounts = StaticAccountStore.from_config()
    inspector = ChecksInspector(accounts)
    watcher = RepositoryWatcher(
        accounts,
        alert_factory=alert_factory_from_config(acknowledge=True),
        delay=delay,
        on_checks_failed=inspector,
    )

    logger.info("Entering watch loop for %s", repository.name)
    try:
        while True:
            watcher.select_repository(repository)
            await watcher.wait()
            await inspector.drain()
            if once:
                break
            logger.debug("Sleeping for %d", interval)
            await asyncio.sleep(interval)
    finally:
        await watcher.close()
        await inspector.drain()


@app.command()
def watch(
    repo: str,
    delay: float = typer.Option(config.EVALUATION_DELAY, help="Seconds until a check"),
    interval: float = typer.Option(config.POLL_INTERVAL, help="Seconds between checks"),
    once: bool = typer.Option(False, help="Run a single evaluation"),
):
    gh_repo = parse_repository(repo)
    repository = Repository(name=gh_repo.full_name, github_repository=gh_repo)
    asyncio.run(watch_loop(repository, delay, interval, once))


@app.command()
def checks(repo: str, ref: str):
    gh_repo = parse_repository(repo)

    async def handle():
        account = await _account_for(gh_repo)
        async with client_for_account(account) as api:
            statuses, check_runs = await fetch_checks(
                api, gh_repo.owner, gh_repo.name, ref
            )
        result = combine_raw(statuses, check_runs)
        if result.is_empty:
            typer.echo("No checks reported")
            return
        typer.echo(render_checks(result.checks))
        typer.echo(f"\nOverall: {result.overall_conclusion.value}")
        if result.overall_conclusion == CheckConclusion.failure:
            raise typer.Exit(1)

    asyncio.run(handle())


@app.command()
def logs(
    repo: str,
    ref: str,
    check: Optional[str] = typer.Option(None, help="Name of the check to show"),
    errors_only: bool = typer.Option(False, help="Only show error lines"),
):
    gh_repo = parse_repository(repo)

    async def handle():
        account = await _account_for(gh_repo)
        async with client_for_account(account) as api:
            statuses, check_runs = await fetch_checks(
                api, gh_repo.owner, gh_repo.name, ref
            )
            result = combine_raw(statuses, check_runs)
            if result.is_empty:
                typer.echo("No checks reported")
                return

            enricher = CheckLogsEnricher(api, publish=_print_state)
            state = await enricher.start(
                gh_repo.owner, gh_repo.name, ref, result.checks
            )

        if state is None:
            return

        if check is not None:
            selected = next((c for c in state.checks if c.name == check), None)
            if selected is None:
                typer.echo(f"No check named '{check}'", err=True)
                raise typer.Exit(1)
        else:
            selected = select_initial_check(state.checks)

        _print_check(selected, gh_repo, errors_only=errors_only)

    asyncio.run(handle())
