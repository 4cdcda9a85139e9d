from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from clientops.api.deps import get_billing_client
from clientops.dunning.engine import DunningAction
from clientops.dunning.schemas import DunningActionRead, DunningSequenceRead, DunningStatisticsRead
from clientops.dunning.service import dunning_service
from clientops.platform.client import BillingCrmClient
from clientops.platform.transitions import DunningStatus


router = APIRouter(prefix="/api/dunning", tags=["dunning"])


@router.get("", response_model=list[DunningSequenceRead])
def list_sequences(
    status: DunningStatus | None = Query(default=None),
    search: str | None = Query(default=None, max_length=200),
    client: BillingCrmClient = Depends(get_billing_client),
) -> list[DunningSequenceRead]:
    return dunning_service.list_sequences(client, status=status, search=search)


@router.get("/statistics", response_model=DunningStatisticsRead)
def get_statistics(client: BillingCrmClient = Depends(get_billing_client)) -> DunningStatisticsRead:
    return dunning_service.statistics(client)


@router.get("/{sequence_id}", response_model=DunningSequenceRead)
def get_sequence(sequence_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> DunningSequenceRead:
    return dunning_service.get_sequence(client, sequence_id)


@router.post("/{sequence_id}/retry", response_model=DunningActionRead)
def retry_payment(sequence_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> DunningActionRead:
    return dunning_service.perform_action(client, sequence_id, DunningAction.RETRY_PAYMENT)


@router.post("/{sequence_id}/payment-link", response_model=DunningActionRead)
def send_payment_link(sequence_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> DunningActionRead:
    return dunning_service.perform_action(client, sequence_id, DunningAction.SEND_PAYMENT_LINK)


@router.post("/{sequence_id}/escalate", response_model=DunningActionRead)
def escalate(sequence_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> DunningActionRead:
    return dunning_service.perform_action(client, sequence_id, DunningAction.ESCALATE)
