from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator, List

import aiohttp
import cachetools
from gidgethub.abc import GitHubAPI
from gidgethub import aiohttp as gh_aiohttp

from checkwatch import config
from checkwatch.accounts import Account
from checkwatch.github.model import (
    ActionsJob,
    CheckRun,
    CombinedStatus,
    PullRequest,
)
from checkwatch.metric import record_api_call

logger = logging.getLogger("checkwatch")

httpcache = cachetools.LRUCache(maxsize=config.HTTP_CACHE_SIZE)


class API:
    gh: GitHubAPI

    call_count: int

    def __init__(self, gh: GitHubAPI):
        self.gh = gh
        self.call_count = 0

    def _count(self, url: str) -> None:
        self.call_count += 1
        record_api_call(url)

    async def get_combined_status(
        self, owner: str, name: str, ref: str
    ) -> CombinedStatus:
        url = "/repos/{owner}/{name}/commits/{ref}/status"
        self._count(url)
        logger.debug("Get combined status for %s/%s@%s", owner, name, ref)
        data = await self.gh.getitem(
            url, url_vars={"owner": owner, "name": name, "ref": ref}
        )
        return CombinedStatus.model_validate(data)

    async def get_check_runs(self, owner: str, name: str, ref: str) -> List[CheckRun]:
        url = "/repos/{owner}/{name}/commits/{ref}/check-runs"
        self._count(url)
        logger.debug("Get check runs for %s/%s@%s", owner, name, ref)
        return [
            CheckRun.model_validate(item)
            async for item in self.gh.getiter(
                url,
                url_vars={"owner": owner, "name": name, "ref": ref},
                iterable_key="check_runs",
            )
        ]

    async def get_actions_job(self, owner: str, name: str, id: int) -> ActionsJob:
        url = "/repos/{owner}/{name}/actions/jobs/{id}"
        self._count(url)
        data = await self.gh.getitem(
            url, url_vars={"owner": owner, "name": name, "id": str(id)}
        )
        return ActionsJob.model_validate(data)

    async def get_job_logs(self, url: str) -> str:
        self._count(url)
        logger.debug("Get job logs %s", url)
        data = await self.gh.getitem(url)
        if isinstance(data, bytes):
            return data.decode(errors="replace")
        if not isinstance(data, str):
            raise ValueError(f"Unexpected log payload type {type(data)!r}")
        return data

    async def get_pulls(self, owner: str, name: str) -> AsyncIterator[PullRequest]:
        url = "/repos/{owner}/{name}/pulls"
        self._count(url)
        logger.debug("Get open pulls for %s/%s", owner, name)
        async for item in self.gh.getiter(
            url + "{?state}", url_vars={"owner": owner, "name": name, "state": "open"}
        ):
            yield PullRequest.model_validate(item)


def job_logs_url(owner: str, name: str, job_id: int) -> str:
    return f"/repos/{owner}/{name}/actions/jobs/{job_id}/logs"


@asynccontextmanager
async def client_for_account(account: Account) -> AsyncIterator[API]:
    async with aiohttp.ClientSession() as session:
        gh = gh_aiohttp.GitHubAPI(
            session,
            "checkwatch",
            oauth_token=account.token,
            cache=httpcache,
            base_url=account.endpoint,
        )
        yield API(gh)
