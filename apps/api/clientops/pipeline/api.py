from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import Response

from clientops.api.deps import get_billing_client
from clientops.pipeline.engine import DealAction
from clientops.pipeline.schemas import (
    BoardMoveRequest,
    BoardRead,
    Deal,
    DealActionRequest,
    PipelineMetricsRead,
    StageChangeRequest,
    TransitionRead,
)
from clientops.pipeline.service import pipeline_service
from clientops.platform.client import BillingCrmClient
from clientops.platform.transitions import DealStage


router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])


@router.get("/deals", response_model=list[Deal])
def list_deals(
    stage: DealStage | None = Query(default=None),
    client: BillingCrmClient = Depends(get_billing_client),
) -> list[Deal]:
    return pipeline_service.list_deals(client, stage=stage)


@router.get("/deals/{deal_id}", response_model=Deal)
def get_deal(deal_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> Deal:
    return pipeline_service.get_deal(client, deal_id)


@router.post("/deals/{deal_id}/stage", response_model=TransitionRead)
def change_stage(
    deal_id: str,
    payload: StageChangeRequest,
    client: BillingCrmClient = Depends(get_billing_client),
) -> TransitionRead:
    return pipeline_service.transition(client, deal_id, payload.target, reason=payload.reason)


@router.post("/deals/{deal_id}/actions/{action}", response_model=TransitionRead)
def perform_action(
    deal_id: str,
    action: DealAction,
    payload: DealActionRequest | None = Body(default=None),
    client: BillingCrmClient = Depends(get_billing_client),
) -> TransitionRead:
    reason = payload.reason if payload is not None else None
    return pipeline_service.perform_action(client, deal_id, action, reason=reason)


@router.delete("/deals/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_deal(deal_id: str, client: BillingCrmClient = Depends(get_billing_client)) -> Response:
    pipeline_service.delete_deal(client, deal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/board", response_model=BoardRead)
def get_board(client: BillingCrmClient = Depends(get_billing_client)) -> BoardRead:
    return pipeline_service.load_board(client)


@router.post("/board/deals/{deal_id}/move", response_model=TransitionRead)
def move_on_board(
    deal_id: str,
    payload: BoardMoveRequest,
    client: BillingCrmClient = Depends(get_billing_client),
) -> TransitionRead:
    return pipeline_service.move_on_board(client, deal_id, payload.column)


@router.get("/metrics", response_model=PipelineMetricsRead)
def get_metrics(client: BillingCrmClient = Depends(get_billing_client)) -> PipelineMetricsRead:
    return pipeline_service.metrics(client)
