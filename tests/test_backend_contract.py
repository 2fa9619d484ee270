from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi import HTTPException

from event_normalizer.main import app
from event_normalizer.routes import normalize as normalize_route
from event_normalizer.routes import service as service_route
from event_normalizer.schemas.api_contract import (
    FormatsResponse,
    HealthResponse,
    InspectResponse,
    MetricsResponse,
    NormalizeRequest,
    NormalizeResponse,
)
from event_normalizer.services import metrics as metrics_service

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def clean_metrics(monkeypatch):
    monkeypatch.delenv("EVENT_NORMALIZER_METRICS_FILE", raising=False)
    monkeypatch.delenv("EVENT_NORMALIZER_STRICT_VALIDATION", raising=False)
    metrics_service.reset()
    yield
    metrics_service.reset()


def _request(external_format: str, sample: str, **extra) -> NormalizeRequest:
    payload = json.loads((REPO_ROOT / "samples" / sample).read_text(encoding="utf-8"))
    return NormalizeRequest.model_validate(
        {"event": {"format": external_format, "raw_payload": payload}, **extra}
    )


def test_normalize_response_contract_is_stable():
    response = normalize_route.normalize(_request("openai_api", "openai_chat_response.json"))

    validated = NormalizeResponse.model_validate(response)
    assert set(response["data"].keys()) == {"normalized_event", "metrics"}
    assert set(response["data"]["metrics"].keys()) == {
        "processing_time_ms",
        "field_mappings_applied",
        "fields_dropped",
        "warnings_count",
    }
    event = validated.data.normalized_event
    assert event["type"] == "llm.response"
    assert event["schema_version"] == "1.0.0"
    assert validated.data.metrics.warnings_count == 1


def test_request_config_overrides_only_sent_keys(monkeypatch):
    monkeypatch.setenv("EVENT_NORMALIZER_INCLUDE_FIELD_MAPPINGS", "false")
    request = _request(
        "openai_api",
        "openai_chat_response.json",
        config={"include_dropped_fields": False},
    )

    event = normalize_route.normalize(request)["data"]["normalized_event"]

    assert "dropped_fields" not in event["normalization"]
    assert event["normalization"]["field_mappings"] == []


def test_unsupported_format_maps_to_400():
    request = NormalizeRequest.model_validate({"event": {"format": "webhook_gitlab", "raw_payload": {}}})

    with pytest.raises(HTTPException) as excinfo:
        normalize_route.normalize(request)

    assert excinfo.value.status_code == 400
    assert excinfo.value.detail["code"] == "UNSUPPORTED_FORMAT"
    assert metrics_service.get_metrics()["unsupported_format_total"] == 1


def test_strict_validation_maps_failures_to_422():
    request = NormalizeRequest.model_validate(
        {
            "event": {"format": "openai_api", "raw_payload": {"model": "gpt-4o", "messages": "hi"}},
            "config": {"strict_validation": True},
        }
    )

    with pytest.raises(HTTPException) as excinfo:
        normalize_route.normalize(request)

    detail = excinfo.value.detail
    assert excinfo.value.status_code == 422
    assert detail["code"] == "VALIDATION_FAILED"
    assert detail["errors"] == [
        {"path": "$.messages", "message": "messages must be a list, got str", "code": "INVALID_TYPE"}
    ]
    assert detail["normalized_event"]["validation"]["validated"] is False


def test_lenient_validation_returns_unvalidated_event():
    request = NormalizeRequest.model_validate(
        {"event": {"format": "openai_api", "raw_payload": {"model": "gpt-4o", "messages": "hi"}}}
    )
    response = normalize_route.normalize(request)
    assert response["data"]["normalized_event"]["validation"]["validated"] is False


def test_inspect_response_contract_is_stable():
    response = normalize_route.inspect(_request("webhook_stripe", "stripe_payment_intent_succeeded.json"))

    validated = InspectResponse.model_validate(response)
    assert validated.data.detected_type == "webhook.validated"
    assert validated.data.field_mappings[0].source_path == "id"
    assert metrics_service.get_metrics()["normalizations_total"] == 0


def test_formats_response_contract_is_stable():
    validated = FormatsResponse.model_validate(service_route.list_formats())
    assert validated.format_count == len(validated.formats) == 19


def test_metrics_response_contract_is_stable():
    normalize_route.normalize(_request("webhook_github", "github_push.json"))
    normalize_route.normalize(_request("database_postgres", "postgres_query_result.json"))

    response = service_route.get_metrics()
    validated = MetricsResponse.model_validate(response)

    assert validated.normalizations_total == 2
    assert validated.events_by_format == {"webhook_github": 1, "database_postgres": 1}
    assert validated.events_by_type == {"webhook.validated": 1, "database.query_result": 1}


def test_health_response_contract_is_stable():
    validated = HealthResponse.model_validate(service_route.health())
    assert validated.status == "healthy"
    assert validated.service == "event-normalizer"
    assert validated.timestamp.endswith("Z")


def test_app_exposes_service_routes():
    paths = {route.path for route in app.routes}
    assert {"/health", "/normalize", "/inspect", "/formats", "/metrics"} <= paths
