from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from clientops import events
from clientops.core.config import get_settings
from clientops.core.errors import InvalidTransition, LifecycleError, as_lifecycle_error
from clientops.metrics import observe_aggregation, observe_transition
from clientops.otel import get_tracer
from clientops.pipeline.engine import (
    BoardState,
    DealAction,
    DealLoaded,
    SnapshotLoaded,
    TransitionAcknowledged,
    TransitionFailed,
    TransitionRequested,
    board_columns,
    ensure_deletable,
    pipeline_metrics,
    reduce,
    target_for,
)
from clientops.pipeline.schemas import (
    BoardCardRead,
    BoardColumnRead,
    BoardRead,
    Deal,
    PipelineMetricsRead,
    TransitionRead,
)
from clientops.platform.client import BillingCrmClient, fetch_all
from clientops.platform.clock import Clock, system_clock
from clientops.platform.guards import InFlightRegistry, ViewScope
from clientops.platform.store import ResultStore
from clientops.platform.transitions import DealStage, EntityType


logger = logging.getLogger("clientops.pipeline")
tracer = get_tracer("clientops.pipeline")

_STAGE_EVENTS = {
    DealStage.WON: "deal.won",
    DealStage.LOST: "deal.lost",
    DealStage.CHURNED: "deal.churned",
}


def _new_board() -> ResultStore:
    return ResultStore("pipeline_board", reduce, BoardState())


@dataclass(slots=True)
class PipelineService:
    clock: Clock = system_clock
    in_flight: InFlightRegistry = field(default_factory=InFlightRegistry)
    board: ResultStore = field(default_factory=_new_board)
    board_scope: ViewScope = field(default_factory=lambda: ViewScope("pipeline_board"))

    def list_deals(self, client: BillingCrmClient, stage: DealStage | None = None) -> list[Deal]:
        deals = fetch_all(client.list_deals, get_settings().billing_page_size)
        if stage is not None:
            deals = [deal for deal in deals if deal.stage == stage]
        return deals

    def get_deal(self, client: BillingCrmClient, deal_id: str) -> Deal:
        return client.get_deal(deal_id)

    def transition(
        self,
        client: BillingCrmClient,
        deal_id: str,
        target: DealStage,
        reason: str | None = None,
        from_board: bool = False,
    ) -> TransitionRead:
        """Validate and send a stage change for one deal.

        The deal is re-read from the billing/CRM service first. Its stage only
        changes locally once the service acknowledges the update; an illegal
        target never reaches the service.
        """
        deal = client.get_deal(deal_id)
        self.board.dispatch(DealLoaded(deal=deal))

        result = self.board.dispatch(TransitionRequested(deal_id=deal_id, target=target, from_board=from_board))
        if result is not None and result.error is not None:
            if isinstance(result.error, InvalidTransition):
                self._log_rejected(deal, target)
            raise result.error

        if deal_id not in self.board.state.pending:
            observe_transition(EntityType.DEAL.value, "noop")
            return TransitionRead(deal=deal, from_stage=deal.stage, to_stage=deal.stage, changed=False)

        try:
            updated = self._send_stage_update(client, deal, target, reason)
        except LifecycleError as exc:
            self.board.dispatch(TransitionFailed(deal_id=deal_id, error=exc))
            raise
        self.board.dispatch(TransitionAcknowledged(deal=updated))
        return TransitionRead(deal=updated, from_stage=deal.stage, to_stage=updated.stage, changed=True)

    def perform_action(
        self,
        client: BillingCrmClient,
        deal_id: str,
        action: DealAction,
        reason: str | None = None,
    ) -> TransitionRead:
        return self.transition(client, deal_id, target_for(action), reason=reason)

    def move_on_board(self, client: BillingCrmClient, deal_id: str, column: DealStage) -> TransitionRead:
        return self.transition(client, deal_id, column, from_board=True)

    def load_board(self, client: BillingCrmClient) -> BoardRead:
        token = self.board_scope.open()
        deals = fetch_all(client.list_deals, get_settings().billing_page_size)
        self.board.dispatch(SnapshotLoaded(deals=tuple(deals)), token)
        return self.board_read()

    def board_read(self) -> BoardRead:
        state: BoardState = self.board.state
        return BoardRead(
            columns=[
                BoardColumnRead(
                    stage=stage,
                    cards=[BoardCardRead(deal=deal, pending_target=state.pending.get(deal.id)) for deal in deals],
                )
                for stage, deals in board_columns(state).items()
            ],
            needs_refetch=state.needs_refetch,
            last_error=state.last_error.to_detail() if state.last_error is not None else None,
        )

    def delete_deal(self, client: BillingCrmClient, deal_id: str) -> None:
        deal = client.get_deal(deal_id)
        ensure_deletable(deal)
        with self.in_flight.hold(EntityType.DEAL.value, deal_id):
            client.delete_deal(deal_id)

        logger.info("deal.deleted", extra={"entity_type": "deal", "entity_id": deal_id, "from_state": deal.stage.value})
        events.publish({"event_type": "deal.deleted", "payload": {"deal_id": deal_id, "stage": deal.stage.value}})
        if deal_id in self.board.state.deals:
            remaining = tuple(value for key, value in self.board.state.deals.items() if key != deal_id)
            self.board.dispatch(SnapshotLoaded(deals=remaining))

    def metrics(self, client: BillingCrmClient) -> PipelineMetricsRead:
        today = self.clock.today()
        deals = fetch_all(client.list_deals, get_settings().billing_page_size)
        started = time.perf_counter()
        with tracer.start_as_current_span("pipeline.metrics") as span:
            span.set_attribute("deal_count", len(deals))
            result = pipeline_metrics(deals, today)
        observe_aggregation("pipeline", time.perf_counter() - started)
        return result

    def _send_stage_update(self, client: BillingCrmClient, deal: Deal, target: DealStage, reason: str | None) -> Deal:
        with self.in_flight.hold(EntityType.DEAL.value, deal.id):
            try:
                updated = client.update_deal_stage(deal.id, target, expected_stage=deal.stage, reason=reason)
            except Exception as exc:
                failure = as_lifecycle_error("update_deal_stage", exc)
                observe_transition(EntityType.DEAL.value, failure.code)
                logger.warning(
                    "deal.transition_failed",
                    extra={
                        "entity_type": "deal",
                        "entity_id": deal.id,
                        "from_state": deal.stage.value,
                        "to_state": target.value,
                        "outcome": failure.code,
                        "error": str(failure),
                    },
                )
                if failure is exc:
                    raise
                raise failure from exc

        observe_transition(EntityType.DEAL.value, "applied")
        logger.info(
            "deal.transition",
            extra={
                "entity_type": "deal",
                "entity_id": deal.id,
                "from_state": deal.stage.value,
                "to_state": updated.stage.value,
                "outcome": "applied",
            },
        )
        payload = {"deal_id": deal.id, "from_stage": deal.stage.value, "to_stage": updated.stage.value}
        events.publish({"event_type": "deal.stage_changed", "payload": payload})
        stage_event = _STAGE_EVENTS.get(updated.stage)
        if stage_event is not None:
            events.publish({"event_type": stage_event, "payload": {**payload, "reason": reason}})
        return updated

    def _log_rejected(self, deal: Deal, target: DealStage) -> None:
        observe_transition(EntityType.DEAL.value, "rejected")
        logger.info(
            "deal.transition_rejected",
            extra={
                "entity_type": "deal",
                "entity_id": deal.id,
                "from_state": deal.stage.value,
                "to_state": target.value,
                "outcome": "rejected",
            },
        )


pipeline_service = PipelineService()
