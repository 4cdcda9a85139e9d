from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from clientops import events
from clientops.core.config import get_settings
from clientops.core.errors import NotFound
from clientops.metrics import observe_aggregation, observe_batch
from clientops.otel import get_tracer
from clientops.onboarding.engine import derive_status, filter_statuses, overview, triage_order
from clientops.onboarding.schemas import (
    BulkActionRequest,
    OnboardingOverviewRead,
    OnboardingStatusRead,
    StalledFilter,
)
from clientops.platform.bands import OnboardingPhase, stall_thresholds_from_settings
from clientops.platform.batch import BatchResult, SelectionSet, run_batch
from clientops.platform.client import BillingCrmClient, fetch_all
from clientops.platform.clock import Clock, system_clock
from clientops.platform.guards import InFlightRegistry
from clientops.platform.notifications import NotificationPort


logger = logging.getLogger("clientops.onboarding")
tracer = get_tracer("clientops.onboarding")

NOT_IN_VIEW = "not_in_view"


@dataclass(slots=True)
class OnboardingService:
    clock: Clock = system_clock
    in_flight: InFlightRegistry = field(default_factory=InFlightRegistry)

    def statuses(self, client: BillingCrmClient) -> list[OnboardingStatusRead]:
        settings = get_settings()
        today = self.clock.today()
        thresholds = stall_thresholds_from_settings(settings)
        summaries = fetch_all(client.list_onboarding, settings.billing_page_size)
        return [derive_status(summary, today, thresholds) for summary in summaries]

    def list_statuses(
        self,
        client: BillingCrmClient,
        phase: OnboardingPhase | None = None,
        stalled: StalledFilter = StalledFilter.ALL,
    ) -> list[OnboardingStatusRead]:
        return triage_order(filter_statuses(self.statuses(client), phase=phase, stalled=stalled))

    def get_status(self, client: BillingCrmClient, organization_id: str) -> OnboardingStatusRead:
        for status in self.statuses(client):
            if status.organization_id == organization_id:
                return status
        raise NotFound("onboarding", organization_id)

    def overview(self, client: BillingCrmClient) -> OnboardingOverviewRead:
        statuses = self.statuses(client)
        started = time.perf_counter()
        with tracer.start_as_current_span("onboarding.overview") as span:
            span.set_attribute("organization_count", len(statuses))
            result = overview(statuses)
        observe_aggregation("onboarding", time.perf_counter() - started)
        return result

    def send_reminder(self, client: BillingCrmClient, organization_id: str) -> None:
        with self.in_flight.hold("onboarding", organization_id):
            client.send_onboarding_reminder(organization_id)
        logger.info(
            "onboarding.reminder_sent",
            extra={"entity_type": "onboarding", "entity_id": organization_id, "action": "send_reminder"},
        )

    def schedule_call(self, client: BillingCrmClient, organization_id: str) -> None:
        with self.in_flight.hold("onboarding", organization_id):
            client.schedule_onboarding_call(organization_id)
        logger.info(
            "onboarding.call_scheduled",
            extra={"entity_type": "onboarding", "entity_id": organization_id, "action": "schedule_call"},
        )

    def resolve_selection(self, client: BillingCrmClient, request: BulkActionRequest) -> tuple[list[str], list[str]]:
        """Resolve a bulk request against the currently filtered view.

        Returns ``(selected, out_of_view)``. Explicit ids that the active
        ``phase``/``stalled`` filter hides are never acted on; they come back
        in ``out_of_view`` so the batch result can report them.
        """
        visible = [
            status.organization_id
            for status in self.list_statuses(client, phase=request.phase, stalled=request.stalled)
        ]
        selection = SelectionSet()
        selection.apply_filter((request.phase, request.stalled))
        if request.select_all:
            selection.select_all(visible)
            return selection.selected, []
        selection.select(request.organization_ids)
        out_of_view = selection.restrict_to(visible)
        return selection.selected, out_of_view

    def bulk_reminder(
        self,
        client: BillingCrmClient,
        organization_ids: list[str],
        notifier: NotificationPort,
        out_of_view: Iterable[str] = (),
    ) -> BatchResult:
        result = run_batch("bulk_reminder", organization_ids, lambda item_id: self.send_reminder(client, item_id))
        self._reject_out_of_view(result, out_of_view)
        self._report(result, notifier)
        return result

    def export(
        self,
        client: BillingCrmClient,
        organization_ids: list[str],
        notifier: NotificationPort,
        out_of_view: Iterable[str] = (),
    ) -> tuple[list[OnboardingStatusRead], BatchResult]:
        by_id = {status.organization_id: status for status in self.statuses(client)}
        rows: list[OnboardingStatusRead] = []

        def collect(organization_id: str) -> None:
            status = by_id.get(organization_id)
            if status is None:
                raise NotFound("onboarding", organization_id)
            rows.append(status)

        result = run_batch("export", organization_ids, collect)
        self._reject_out_of_view(result, out_of_view)
        self._report(result, notifier)
        return triage_order(rows), result

    def _reject_out_of_view(self, result: BatchResult, out_of_view: Iterable[str]) -> None:
        rejected = list(dict.fromkeys(out_of_view))
        for organization_id in rejected:
            result.reject(organization_id, NOT_IN_VIEW, f"onboarding {organization_id} is not in the current view")
        if rejected:
            observe_batch(result.action, succeeded=0, failed=len(rejected))
            logger.info(
                "onboarding.selection_out_of_view",
                extra={"action": result.action, "failed": len(rejected)},
            )

    def _report(self, result: BatchResult, notifier: NotificationPort) -> None:
        notifier.batch_completed(result)
        events.publish(
            {
                "event_type": "onboarding.batch_completed",
                "payload": {
                    "action": result.action,
                    "succeeded": list(result.succeeded),
                    "failed": list(result.failed),
                },
            }
        )


onboarding_service = OnboardingService()
