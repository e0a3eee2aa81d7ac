import logging
from typing import Optional

import notifiers.logging

from checkwatch import config
from checkwatch.alert import provider_defaults


def log_provider() -> Optional[str]:
    if config.ALERT_PROVIDER is not None:
        return config.ALERT_PROVIDER
    if config.TELEGRAM_TOKEN is not None:
        return "telegram"
    return None


def get_log_handlers(logger, level=logging.WARNING):
    """Forward warnings and errors of ``logger`` to the alert provider."""
    provider = log_provider()
    if provider is None:
        return []
    handler = notifiers.logging.NotificationHandler(
        provider, defaults=provider_defaults(provider)
    )
    handler.setLevel(level)
    logger.addHandler(handler)
    return [handler]
