from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

from clientops.platform.bands import RiskLevel, is_at_risk, risk_level_of, risk_tone
from clientops.health.schemas import (
    ClientHealthRead,
    ClientHealthSnapshot,
    HealthComponent,
    HealthPortfolioRead,
    RiskCountRead,
    Trend,
)


@dataclass(frozen=True, slots=True)
class HealthWeights:
    """Relative weight per health component.

    Weights come from configuration. With no weights configured the score
    reported by the billing service is used unchanged.

    Score change compares like with like only when the billing service also
    reports ``previous_component_scores``; those are re-weighted here. When
    it reports only ``previous_score``, the change is taken against that
    figure, which was computed with the service's own formula.
    """

    weights: Mapping[HealthComponent, float] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        for component, weight in self.weights.items():
            if weight < 0:
                raise ValueError(f"weight for {component.value} must not be negative")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, float]) -> HealthWeights:
        parsed: dict[HealthComponent, float] = {}
        for name, weight in raw.items():
            try:
                component = HealthComponent(name.lower())
            except ValueError as exc:
                raise ValueError(f"unknown health component: {name}") from exc
            parsed[component] = float(weight)
        return cls(weights=MappingProxyType(parsed))

    @property
    def configured(self) -> bool:
        return sum(self.weights.values()) > 0


def component_scores(snapshot: ClientHealthSnapshot) -> dict[HealthComponent, int]:
    scores = {
        HealthComponent.USAGE: snapshot.usage_score,
        HealthComponent.PAYMENT: snapshot.payment_score,
        HealthComponent.SUBSCRIPTION: snapshot.subscription_score,
    }
    if snapshot.engagement_score is not None:
        scores[HealthComponent.ENGAGEMENT] = snapshot.engagement_score
    return scores


def weighted_score(scores: Mapping[HealthComponent, int], weights: HealthWeights) -> int | None:
    """Weighted average of ``scores``; ``None`` when no weighted component is present."""
    weighted = Decimal("0")
    total_weight = Decimal("0")
    for component, weight in weights.weights.items():
        if component not in scores or weight == 0:
            continue
        weighted += Decimal(str(weight)) * scores[component]
        total_weight += Decimal(str(weight))

    if total_weight == 0:
        return None
    score = int((weighted / total_weight).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, score))


def overall_score(snapshot: ClientHealthSnapshot, weights: HealthWeights) -> int:
    if not weights.configured:
        return snapshot.overall_score
    score = weighted_score(component_scores(snapshot), weights)
    return snapshot.overall_score if score is None else score


def previous_score(snapshot: ClientHealthSnapshot, weights: HealthWeights) -> int | None:
    if weights.configured and snapshot.previous_component_scores:
        score = weighted_score(snapshot.previous_component_scores, weights)
        if score is not None:
            return score
    return snapshot.previous_score


def trend_of(score_change: int | None) -> Trend:
    if score_change is None or score_change == 0:
        return Trend.STABLE
    return Trend.IMPROVING if score_change > 0 else Trend.DECLINING


def _extreme_component(scores: dict[HealthComponent, int], *, weakest: bool) -> HealthComponent:
    # Ties resolve to the first component in declaration order.
    order = list(HealthComponent)
    if weakest:
        return min(scores, key=lambda component: (scores[component], order.index(component)))
    return max(scores, key=lambda component: (scores[component], -order.index(component)))


def derive_health(snapshot: ClientHealthSnapshot, weights: HealthWeights = HealthWeights()) -> ClientHealthRead:
    score = overall_score(snapshot, weights)
    level = risk_level_of(score)
    previous = previous_score(snapshot, weights)
    change = score - previous if previous is not None else None
    scores = component_scores(snapshot)
    return ClientHealthRead(
        organization_id=snapshot.organization_id,
        organization_name=snapshot.organization_name,
        usage_score=snapshot.usage_score,
        payment_score=snapshot.payment_score,
        subscription_score=snapshot.subscription_score,
        engagement_score=snapshot.engagement_score,
        overall_score=score,
        risk_level=level,
        risk_tone=risk_tone(level),
        trend=trend_of(change),
        score_change=change,
        previous_score=previous,
        at_risk=is_at_risk(level),
        weakest_component=_extreme_component(scores, weakest=True),
        strongest_component=_extreme_component(scores, weakest=False),
    )


def portfolio(healths: Iterable[ClientHealthRead]) -> HealthPortfolioRead:
    healths = list(healths)
    counts = {level: 0 for level in RiskLevel}
    for health in healths:
        counts[health.risk_level] += 1

    average = Decimal("0")
    if healths:
        average = (Decimal(sum(health.overall_score for health in healths)) / Decimal(len(healths))).quantize(
            Decimal("0.1"), rounding=ROUND_HALF_UP
        )

    at_risk = sorted(
        (health for health in healths if health.at_risk),
        key=lambda health: (health.overall_score, health.organization_id),
    )
    return HealthPortfolioRead(
        total=len(healths),
        average_score=average,
        declining_count=sum(1 for health in healths if health.trend == Trend.DECLINING),
        risk_counts=[RiskCountRead(risk_level=level, count=count) for level, count in counts.items()],
        at_risk=at_risk,
    )
