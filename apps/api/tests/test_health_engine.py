from __future__ import annotations

from decimal import Decimal

import pytest

from clientops.health.engine import HealthWeights, derive_health, overall_score, portfolio, trend_of
from clientops.health.schemas import ClientHealthSnapshot, HealthComponent, Trend
from clientops.platform.bands import RiskLevel


def _snapshot(
    organization_id: str = "org-1",
    usage: int = 80,
    payment: int = 60,
    subscription: int = 40,
    engagement: int | None = None,
    overall: int = 70,
    previous: int | None = None,
) -> ClientHealthSnapshot:
    return ClientHealthSnapshot(
        organization_id=organization_id,
        organization_name=f"Org {organization_id}",
        usage_score=usage,
        payment_score=payment,
        subscription_score=subscription,
        engagement_score=engagement,
        overall_score=overall,
        previous_score=previous,
    )


def test_weighted_score_uses_injected_weights() -> None:
    weights = HealthWeights.from_mapping({"usage": 2, "payment": 1, "subscription": 1})
    assert overall_score(_snapshot(), weights) == 65


def test_unconfigured_weights_keep_service_score() -> None:
    assert overall_score(_snapshot(overall=77), HealthWeights()) == 77
    assert overall_score(_snapshot(overall=77), HealthWeights.from_mapping({"usage": 0})) == 77


def test_missing_engagement_component_is_skipped() -> None:
    weights = HealthWeights.from_mapping({"usage": 1, "engagement": 3})
    assert overall_score(_snapshot(usage=50), weights) == 50
    assert overall_score(_snapshot(usage=50, engagement=90), weights) == 80


def test_invalid_weights_are_rejected() -> None:
    with pytest.raises(ValueError):
        HealthWeights.from_mapping({"happiness": 1})
    with pytest.raises(ValueError):
        HealthWeights.from_mapping({"usage": -1})


@pytest.mark.parametrize(
    ("change", "trend"),
    [(None, Trend.STABLE), (0, Trend.STABLE), (5, Trend.IMPROVING), (-3, Trend.DECLINING)],
)
def test_trend_follows_score_change(change: int | None, trend: Trend) -> None:
    assert trend_of(change) == trend


def test_derive_health_flags_risk_and_components() -> None:
    health = derive_health(_snapshot(usage=30, payment=90, subscription=50, overall=45, previous=60))

    assert health.overall_score == 45
    assert health.risk_level == RiskLevel.HIGH
    assert health.at_risk
    assert health.trend == Trend.DECLINING
    assert health.score_change == -15
    assert health.weakest_component == HealthComponent.USAGE
    assert health.strongest_component == HealthComponent.PAYMENT


def test_portfolio_summary() -> None:
    healths = [
        derive_health(_snapshot("org-1", overall=90, previous=85)),
        derive_health(_snapshot("org-2", overall=35, previous=50)),
        derive_health(_snapshot("org-3", overall=55)),
    ]

    summary = portfolio(healths)

    assert summary.total == 3
    assert summary.average_score == Decimal("60.0")
    assert summary.declining_count == 1
    assert [item.organization_id for item in summary.at_risk] == ["org-2", "org-3"]
    counts = {item.risk_level: item.count for item in summary.risk_counts}
    assert counts == {RiskLevel.LOW: 1, RiskLevel.MEDIUM: 0, RiskLevel.HIGH: 1, RiskLevel.CRITICAL: 1}


def test_score_change_reweights_previous_components_when_reported() -> None:
    weights = HealthWeights.from_mapping({"usage": 2, "payment": 1, "subscription": 1})
    snapshot = _snapshot(previous=70).model_copy(
        update={
            "previous_component_scores": {
                HealthComponent.USAGE: 90,
                HealthComponent.PAYMENT: 60,
                HealthComponent.SUBSCRIPTION: 50,
            }
        }
    )

    health = derive_health(snapshot, weights)

    assert health.overall_score == 65
    assert health.previous_score == 73
    assert health.score_change == -8
    assert health.trend == Trend.DECLINING


def test_score_change_falls_back_to_reported_previous_score() -> None:
    weights = HealthWeights.from_mapping({"usage": 2, "payment": 1, "subscription": 1})

    health = derive_health(_snapshot(previous=70), weights)

    assert health.overall_score == 65
    assert health.previous_score == 70
    assert health.score_change == -5


def test_previous_components_ignored_without_weights() -> None:
    snapshot = _snapshot(overall=70, previous=60).model_copy(
        update={"previous_component_scores": {HealthComponent.USAGE: 10}}
    )

    health = derive_health(snapshot)

    assert health.previous_score == 60
    assert health.score_change == 10
    assert health.trend == Trend.IMPROVING


def test_previous_component_scores_parse_from_billing_payload() -> None:
    snapshot = ClientHealthSnapshot.model_validate(
        {
            "organization_id": "org-1",
            "usage_score": 80,
            "payment_score": 60,
            "subscription_score": 40,
            "overall_score": 70,
            "previous_component_scores": {"usage": 90, "payment": 60},
        }
    )

    assert snapshot.previous_component_scores == {HealthComponent.USAGE: 90, HealthComponent.PAYMENT: 60}
