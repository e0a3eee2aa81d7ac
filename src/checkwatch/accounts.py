from typing import List, Optional, Protocol, Sequence

import pydantic

from checkwatch import config


class Account(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    endpoint: str
    token: str
    login: Optional[str] = None


class AccountStore(Protocol):
    async def get_all(self) -> List[Account]: ...


class StaticAccountStore:
    """Account store backed by a fixed list, e.g. built from the environment."""

    def __init__(self, accounts: Sequence[Account] = ()):
        self._accounts = list(accounts)

    async def get_all(self) -> List[Account]:
        return list(self._accounts)

    @classmethod
    def from_config(cls) -> "StaticAccountStore":
        if config.GITHUB_TOKEN is None:
            return cls()
        return cls(
            [
                Account(
                    endpoint=config.GITHUB_ENDPOINT,
                    token=config.GITHUB_TOKEN,
                    login=config.GITHUB_LOGIN,
                )
            ]
        )


def find_account_for_endpoint(
    accounts: Sequence[Account], endpoint: str
) -> Optional[Account]:
    wanted = endpoint.rstrip("/")
    for account in accounts:
        if account.endpoint.rstrip("/") == wanted:
            return account
    return None
