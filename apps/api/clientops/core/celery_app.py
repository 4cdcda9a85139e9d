import logging
from typing import Any

from celery import Celery

from clientops import events
from clientops.api.deps import get_billing_client
from clientops.core.config import get_settings
from clientops.dashboards.service import refresh_dashboards

settings = get_settings()
logger = logging.getLogger("clientops.tasks")

celery_app = Celery("clientops_api", broker=settings.redis_url, backend=settings.redis_url)
celery_app.conf.beat_schedule = {
    "refresh-dashboards": {
        "task": "clientops.tasks.refresh_dashboards",
        "schedule": float(settings.dashboard_refresh_seconds),
    },
}


@celery_app.task(name="clientops.tasks.refresh_dashboards")
def refresh_dashboards_task() -> dict[str, Any]:
    snapshot = refresh_dashboards(get_billing_client())
    payload = snapshot.model_dump(mode="json")
    events.publish({"event_type": "dashboard.refreshed", "payload": {"as_of": payload["as_of"]}})
    logger.info("dashboard.refreshed", extra={"event_name": "dashboard.refreshed", "outcome": "ok"})
    return payload
