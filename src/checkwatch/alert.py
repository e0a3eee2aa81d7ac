import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Protocol

import notifiers

from checkwatch import config

logger = logging.getLogger("checkwatch")


class Alert(Protocol):
    def on_click(self, handler: Callable[[], None]) -> None: ...

    def show(self) -> None: ...


AlertFactory = Callable[[str, str], Alert]


class NotifierAlert:
    """
    Alert delivered through a ``notifiers`` provider.

    Without a provider the alert is only logged. Providers have no notion of a
    click, so whoever presents the alert calls :meth:`click` once the user
    acknowledges it; with ``acknowledge=True`` that happens right after it is
    shown.
    """

    def __init__(
        self,
        title: str,
        body: str,
        *,
        provider: Optional[str] = None,
        defaults: Optional[Dict[str, Any]] = None,
        acknowledge: bool = False,
    ):
        self.title = title
        self.body = body
        self.provider = provider
        self.defaults = defaults or {}
        self.acknowledge = acknowledge
        self._handler: Optional[Callable[[], None]] = None
        self.shown = False
        self.delivery: Optional[asyncio.Future] = None

    def on_click(self, handler: Callable[[], None]) -> None:
        self._handler = handler

    def click(self) -> None:
        if self._handler is None:
            logger.debug("Alert '%s' clicked without a handler", self.title)
            return
        self._handler()

    def _send(self) -> None:
        notifier = notifiers.get_notifier(self.provider)
        response = notifier.notify(
            message=f"{self.title}\n{self.body}", **self.defaults
        )
        if not response.ok:
            logger.warning(
                "Delivering alert via %s failed: %s", self.provider, response.errors
            )

    def _on_delivered(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Delivering alert via %s failed",
                self.provider,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def show(self) -> None:
        self.shown = True
        logger.info("%s: %s", self.title, self.body)
        if self.provider is not None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                self._send()
            else:
                self.delivery = loop.run_in_executor(None, self._send)
                self.delivery.add_done_callback(self._on_delivered)
        if self.acknowledge:
            self.click()


def provider_defaults(provider: Optional[str]) -> Dict[str, Any]:
    # other providers read their settings from NOTIFIERS_* environment variables
    if provider == "telegram":
        return {"token": config.TELEGRAM_TOKEN, "chat_id": config.TELEGRAM_CHAT_ID}
    return {}


def alert_factory_from_config(acknowledge: bool = False) -> AlertFactory:
    defaults = provider_defaults(config.ALERT_PROVIDER)

    def factory(title: str, body: str) -> NotifierAlert:
        return NotifierAlert(
            title,
            body,
            provider=config.ALERT_PROVIDER,
            defaults=defaults,
            acknowledge=acknowledge,
        )

    return factory
