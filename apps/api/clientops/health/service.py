from __future__ import annotations

import time
from dataclasses import dataclass

from clientops.core.config import get_settings
from clientops.core.errors import NotFound
from clientops.health.engine import HealthWeights, derive_health, portfolio
from clientops.health.schemas import ClientHealthRead, HealthPortfolioRead
from clientops.metrics import observe_aggregation
from clientops.otel import get_tracer
from clientops.platform.bands import RiskLevel
from clientops.platform.client import BillingCrmClient, fetch_all


tracer = get_tracer("clientops.health")


def weights_from_settings() -> HealthWeights:
    return HealthWeights.from_mapping(get_settings().health_weights)


@dataclass(slots=True)
class HealthService:
    def scores(self, client: BillingCrmClient, weights: HealthWeights | None = None) -> list[ClientHealthRead]:
        weights = weights or weights_from_settings()
        snapshots = fetch_all(client.list_health, get_settings().billing_page_size)
        return [derive_health(snapshot, weights) for snapshot in snapshots]

    def list_scores(self, client: BillingCrmClient, risk_level: RiskLevel | None = None) -> list[ClientHealthRead]:
        scores = self.scores(client)
        if risk_level is not None:
            scores = [score for score in scores if score.risk_level == risk_level]
        return sorted(scores, key=lambda item: (item.overall_score, item.organization_id))

    def get_score(self, client: BillingCrmClient, organization_id: str) -> ClientHealthRead:
        for score in self.scores(client):
            if score.organization_id == organization_id:
                return score
        raise NotFound("health", organization_id)

    def portfolio(self, client: BillingCrmClient) -> HealthPortfolioRead:
        scores = self.scores(client)
        started = time.perf_counter()
        with tracer.start_as_current_span("health.portfolio") as span:
            span.set_attribute("organization_count", len(scores))
            result = portfolio(scores)
        observe_aggregation("health", time.perf_counter() - started)
        return result


health_service = HealthService()
