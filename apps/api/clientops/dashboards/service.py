from __future__ import annotations

import logging
import time

from clientops.core.config import get_settings
from clientops.dashboards.schemas import DashboardSnapshot
from clientops.dunning.engine import statistics
from clientops.health.engine import derive_health, portfolio
from clientops.health.service import weights_from_settings
from clientops.metrics import observe_aggregation
from clientops.onboarding.engine import derive_status, overview
from clientops.otel import get_tracer
from clientops.pipeline.engine import pipeline_metrics
from clientops.platform.bands import stall_thresholds_from_settings
from clientops.platform.client import BillingCrmClient, fetch_all
from clientops.platform.clock import Clock, system_clock


logger = logging.getLogger("clientops.dashboards")
tracer = get_tracer("clientops.dashboards")


def refresh_dashboards(client: BillingCrmClient, clock: Clock = system_clock) -> DashboardSnapshot:
    """Recompute every dashboard from one snapshot read.

    ``today`` is captured once so all derivations in the pass agree on the date.
    """
    settings = get_settings()
    page_size = settings.billing_page_size
    today = clock.today()
    started = time.perf_counter()

    with tracer.start_as_current_span("dashboards.refresh") as span:
        span.set_attribute("as_of", today.isoformat())
        deals = fetch_all(client.list_deals, page_size)
        summaries = fetch_all(client.list_onboarding, page_size)
        sequences = fetch_all(client.list_dunning_sequences, page_size)
        snapshots = fetch_all(client.list_health, page_size)

        thresholds = stall_thresholds_from_settings(settings)
        weights = weights_from_settings()
        result = DashboardSnapshot(
            as_of=today,
            pipeline=pipeline_metrics(deals, today),
            onboarding=overview(derive_status(summary, today, thresholds) for summary in summaries),
            dunning=statistics(sequences, today),
            health=portfolio(derive_health(snapshot, weights) for snapshot in snapshots),
        )

    duration = time.perf_counter() - started
    observe_aggregation("all", duration)
    logger.info("dashboards.refreshed", extra={"duration_ms": round(duration * 1000, 2), "outcome": "ok"})
    return result
