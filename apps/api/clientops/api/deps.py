from __future__ import annotations

from functools import lru_cache

from clientops.core.config import get_settings
from clientops.platform.client import BillingCrmClient, HttpBillingCrmClient, InMemoryBillingCrmClient
from clientops.platform.notifications import LoggingNotificationPort, NotificationPort


_in_memory_client = InMemoryBillingCrmClient()
_notification_port = LoggingNotificationPort()


@lru_cache
def _http_client(base_url: str, token: str | None, timeout_seconds: float) -> HttpBillingCrmClient:
    return HttpBillingCrmClient(base_url, token=token, timeout_seconds=timeout_seconds)


def get_billing_client() -> BillingCrmClient:
    settings = get_settings()
    if settings.billing_api_url:
        return _http_client(settings.billing_api_url, settings.billing_api_token, settings.billing_api_timeout_seconds)
    return _in_memory_client


def get_notification_port() -> NotificationPort:
    return _notification_port
