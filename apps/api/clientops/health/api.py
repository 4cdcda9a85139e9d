from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from clientops.api.deps import get_billing_client
from clientops.health.schemas import ClientHealthRead, HealthPortfolioRead
from clientops.health.service import health_service
from clientops.platform.bands import RiskLevel
from clientops.platform.client import BillingCrmClient


router = APIRouter(prefix="/api/health-scores", tags=["health"])


@router.get("", response_model=list[ClientHealthRead])
def list_scores(
    risk_level: RiskLevel | None = Query(default=None),
    client: BillingCrmClient = Depends(get_billing_client),
) -> list[ClientHealthRead]:
    return health_service.list_scores(client, risk_level=risk_level)


@router.get("/portfolio", response_model=HealthPortfolioRead)
def get_portfolio(client: BillingCrmClient = Depends(get_billing_client)) -> HealthPortfolioRead:
    return health_service.portfolio(client)


@router.get("/{organization_id}", response_model=ClientHealthRead)
def get_score(organization_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> ClientHealthRead:
    return health_service.get_score(client, organization_id)
