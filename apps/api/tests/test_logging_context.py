from __future__ import annotations

import logging
import uuid
from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from clientops.api.deps import get_billing_client
from clientops.core.config import get_settings
from clientops.logging import JsonLogFormatter
from clientops.main import app
from clientops.pipeline.schemas import Deal
from clientops.platform.client import InMemoryBillingCrmClient
from clientops.platform.money import Money
from clientops.platform.transitions import DealStage


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def billing() -> InMemoryBillingCrmClient:
    deal = Deal(id="deal-1", stage=DealStage.LEAD, estimated_value=Money(amount=Decimal("250"), currency="USD"))
    return InMemoryBillingCrmClient(deals={deal.id: deal})


@pytest.fixture()
def client(billing: InMemoryBillingCrmClient) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_billing_client] = lambda: billing
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    path = f"/api/pipeline/deals/{uuid.uuid4()}"
    response = client.get(path, headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "clientops.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/pipeline/deals/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_transition_logs_carry_entity_context(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.post(
        "/api/pipeline/deals/deal-1/stage",
        json={"target": "CONTACTED"},
        headers={"X-Correlation-Id": "abc-456", "X-Actor-Id": "user-1"},
    )
    assert response.status_code == 200

    transition_records = [record for record in caplog.records if record.name == "clientops.pipeline"]
    assert any(
        record.getMessage() == "deal.transition"
        and getattr(record, "entity_id", None) == "deal-1"
        and getattr(record, "from_state", None) == "LEAD"
        and getattr(record, "to_state", None) == "CONTACTED"
        and getattr(record, "correlation_id", None) == "abc-456"
        and getattr(record, "actor_id", None) == "user-1"
        for record in transition_records
    )


def test_rejected_transition_is_logged(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.post("/api/pipeline/deals/deal-1/stage", json={"target": "WON"})
    assert response.status_code == 422

    assert any(
        record.getMessage() == "deal.transition_rejected" and getattr(record, "outcome", None) == "rejected"
        for record in caplog.records
    )


def test_json_formatter_keeps_known_fields_only() -> None:
    record = logging.makeLogRecord(
        {
            "name": "clientops.pipeline",
            "levelname": "INFO",
            "msg": "deal.transition",
            "entity_id": "deal-1",
            "to_state": "WON",
            "password": "hunter2",
            "correlation_id": "corr-1",
        }
    )

    formatted = JsonLogFormatter().format(record)

    assert '"entity_id": "deal-1"' in formatted
    assert '"correlation_id": "corr-1"' in formatted
    assert "hunter2" not in formatted
