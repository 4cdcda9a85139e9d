from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from clientops.api.deps import get_billing_client, get_notification_port
from clientops.onboarding.schemas import (
    BatchResultRead,
    BulkActionRequest,
    OnboardingExportRead,
    OnboardingOverviewRead,
    OnboardingStatusRead,
    StalledFilter,
)
from clientops.onboarding.service import onboarding_service
from clientops.platform.bands import OnboardingPhase
from clientops.platform.client import BillingCrmClient
from clientops.platform.notifications import NotificationPort


router = APIRouter(prefix="/api/onboarding", tags=["onboarding"])


@router.get("", response_model=list[OnboardingStatusRead])
def list_onboarding(
    phase: OnboardingPhase | None = Query(default=None),
    stalled: StalledFilter = Query(default=StalledFilter.ALL),
    client: BillingCrmClient = Depends(get_billing_client),
) -> list[OnboardingStatusRead]:
    return onboarding_service.list_statuses(client, phase=phase, stalled=stalled)


@router.get("/overview", response_model=OnboardingOverviewRead)
def get_overview(client: BillingCrmClient = Depends(get_billing_client)) -> OnboardingOverviewRead:
    return onboarding_service.overview(client)


@router.post("/bulk-reminders", response_model=BatchResultRead)
def bulk_reminders(
    payload: BulkActionRequest,
    client: BillingCrmClient = Depends(get_billing_client),
    notifier: NotificationPort = Depends(get_notification_port),
) -> BatchResultRead:
    organization_ids, out_of_view = onboarding_service.resolve_selection(client, payload)
    result = onboarding_service.bulk_reminder(client, organization_ids, notifier, out_of_view)
    return BatchResultRead.model_validate(result)


@router.post("/export", response_model=OnboardingExportRead)
def export_onboarding(
    payload: BulkActionRequest,
    client: BillingCrmClient = Depends(get_billing_client),
    notifier: NotificationPort = Depends(get_notification_port),
) -> OnboardingExportRead:
    organization_ids, out_of_view = onboarding_service.resolve_selection(client, payload)
    rows, result = onboarding_service.export(client, organization_ids, notifier, out_of_view)
    return OnboardingExportRead(rows=rows, result=BatchResultRead.model_validate(result))


@router.get("/{organization_id}", response_model=OnboardingStatusRead)
def get_onboarding(organization_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> OnboardingStatusRead:
    return onboarding_service.get_status(client, organization_id)


@router.post("/{organization_id}/reminders", status_code=status.HTTP_202_ACCEPTED)
def send_reminder(organization_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> dict[str, str]:
    onboarding_service.send_reminder(client, organization_id)
    return {"organization_id": organization_id, "action": "send_reminder", "status": "accepted"}


@router.post("/{organization_id}/calls", status_code=status.HTTP_202_ACCEPTED)
def schedule_call(organization_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> dict[str, str]:
    onboarding_service.schedule_call(client, organization_id)
    return {"organization_id": organization_id, "action": "schedule_call", "status": "accepted"}
