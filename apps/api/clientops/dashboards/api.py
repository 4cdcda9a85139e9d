from __future__ import annotations

from fastapi import APIRouter, Depends

from clientops.api.deps import get_billing_client
from clientops.dashboards.schemas import DashboardSnapshot
from clientops.dashboards.service import refresh_dashboards
from clientops.platform.client import BillingCrmClient


router = APIRouter(prefix="/api/dashboards", tags=["dashboards"])


@router.get("", response_model=DashboardSnapshot)
def get_dashboards(client: BillingCrmClient = Depends(get_billing_client)) -> DashboardSnapshot:
    return refresh_dashboards(client)
