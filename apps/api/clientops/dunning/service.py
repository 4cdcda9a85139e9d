from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import assert_never

from clientops import events
from clientops.core.config import get_settings
from clientops.core.errors import InvalidTransition, LifecycleError, as_lifecycle_error
from clientops.dunning.engine import (
    ActionAcknowledged,
    ActionFailed,
    ActionRequested,
    DunningAction,
    DunningBoardState,
    SequenceLoaded,
    SnapshotLoaded,
    derive_sequence,
    filter_sequences,
    reduce,
    statistics,
)
from clientops.dunning.schemas import DunningActionRead, DunningSequence, DunningSequenceRead, DunningStatisticsRead
from clientops.metrics import observe_aggregation, observe_dunning_action
from clientops.otel import get_tracer
from clientops.platform.bands import dunning_thresholds_from_settings
from clientops.platform.client import BillingCrmClient, fetch_all
from clientops.platform.clock import Clock, system_clock
from clientops.platform.guards import InFlightRegistry, ViewScope
from clientops.platform.store import ResultStore
from clientops.platform.transitions import DunningStatus, EntityType


logger = logging.getLogger("clientops.dunning")
tracer = get_tracer("clientops.dunning")


def _new_board() -> ResultStore:
    return ResultStore("dunning_board", reduce, DunningBoardState())


def _send(client: BillingCrmClient, action: DunningAction, sequence_id: str) -> DunningSequence:
    match action:
        case DunningAction.RETRY_PAYMENT:
            return client.retry_payment(sequence_id)
        case DunningAction.SEND_PAYMENT_LINK:
            return client.send_payment_link(sequence_id)
        case DunningAction.ESCALATE:
            return client.escalate_dunning(sequence_id)
        case _:
            assert_never(action)


@dataclass(slots=True)
class DunningService:
    clock: Clock = system_clock
    in_flight: InFlightRegistry = field(default_factory=InFlightRegistry)
    board: ResultStore = field(default_factory=_new_board)
    board_scope: ViewScope = field(default_factory=lambda: ViewScope("dunning_board"))

    def _fetch(self, client: BillingCrmClient) -> list[DunningSequence]:
        return fetch_all(client.list_dunning_sequences, get_settings().billing_page_size)

    def list_sequences(
        self,
        client: BillingCrmClient,
        status: DunningStatus | None = None,
        search: str | None = None,
    ) -> list[DunningSequenceRead]:
        today = self.clock.today()
        thresholds = dunning_thresholds_from_settings(get_settings())
        derived = [derive_sequence(sequence, today, thresholds) for sequence in self._fetch(client)]
        filtered = filter_sequences(derived, status=status, search=search)
        return sorted(filtered, key=lambda item: (-item.days_since_failure, item.id))

    def get_sequence(self, client: BillingCrmClient, sequence_id: str) -> DunningSequenceRead:
        sequence = client.get_dunning_sequence(sequence_id)
        return derive_sequence(sequence, self.clock.today(), dunning_thresholds_from_settings(get_settings()))

    def statistics(self, client: BillingCrmClient) -> DunningStatisticsRead:
        today = self.clock.today()
        sequences = self._fetch(client)
        started = time.perf_counter()
        with tracer.start_as_current_span("dunning.statistics") as span:
            span.set_attribute("sequence_count", len(sequences))
            result = statistics(sequences, today)
        observe_aggregation("dunning", time.perf_counter() - started)
        return result

    def load_board(self, client: BillingCrmClient) -> DunningBoardState:
        token = self.board_scope.open()
        self.board.dispatch(SnapshotLoaded(sequences=tuple(self._fetch(client))), token)
        return self.board.state

    def perform_action(self, client: BillingCrmClient, sequence_id: str, action: DunningAction) -> DunningActionRead:
        """Run a guarded recovery action.

        Only ACTIVE sequences accept actions; anything else is rejected with
        ``ActionNotApplicable`` before the billing service is called.
        """
        sequence = client.get_dunning_sequence(sequence_id)
        self.board.dispatch(SequenceLoaded(sequence=sequence))

        result = self.board.dispatch(ActionRequested(sequence_id=sequence_id, action=action))
        if result is not None and result.error is not None:
            outcome = "rejected" if isinstance(result.error, InvalidTransition) else result.error.code
            observe_dunning_action(action.value, outcome)
            logger.info(
                "dunning.action_rejected",
                extra={
                    "entity_type": EntityType.DUNNING.value,
                    "entity_id": sequence_id,
                    "action": action.value,
                    "from_state": sequence.status.value,
                    "outcome": outcome,
                },
            )
            raise result.error

        try:
            with self.in_flight.hold(EntityType.DUNNING.value, sequence_id):
                try:
                    updated = _send(client, action, sequence_id)
                except Exception as exc:
                    failure = as_lifecycle_error(action.value, exc)
                    if failure is exc:
                        raise
                    raise failure from exc
        except LifecycleError as exc:
            self.board.dispatch(ActionFailed(sequence_id=sequence_id, error=exc))
            observe_dunning_action(action.value, exc.code)
            logger.warning(
                "dunning.action_failed",
                extra={
                    "entity_type": EntityType.DUNNING.value,
                    "entity_id": sequence_id,
                    "action": action.value,
                    "outcome": exc.code,
                    "error": str(exc),
                },
            )
            raise

        self.board.dispatch(ActionAcknowledged(sequence=updated))
        observe_dunning_action(action.value, "applied")
        logger.info(
            "dunning.action",
            extra={
                "entity_type": EntityType.DUNNING.value,
                "entity_id": sequence_id,
                "action": action.value,
                "from_state": sequence.status.value,
                "to_state": updated.status.value,
                "outcome": "applied",
            },
        )
        events.publish(
            {
                "event_type": "dunning.action_requested",
                "payload": {
                    "sequence_id": sequence_id,
                    "organization_id": sequence.organization_id,
                    "action": action.value,
                    "status": updated.status.value,
                },
            }
        )
        read = derive_sequence(updated, self.clock.today(), dunning_thresholds_from_settings(get_settings()))
        return DunningActionRead(action=action.value, sequence=read)


dunning_service = DunningService()
