import json
from pathlib import Path

import pytest

from event_normalizer.services.registry import UnsupportedFormatError, get_normalizer

REPO_ROOT = Path(__file__).resolve().parents[1]


def _detect(external_format: str, payload) -> str:
    return get_normalizer(external_format).detect_event_type(payload)


def _load_sample(name: str):
    path = REPO_ROOT / "samples" / name
    return json.loads(path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# LLM providers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"choices": [], "usage": {}}, "llm.response"),
        ({"model": "gpt-4o", "messages": []}, "llm.request"),
        ({"choices": [{"delta": {"content": "Hel"}}]}, "llm.stream_chunk"),
        ({"error": {"message": "Rate limit"}}, "llm.error"),
        ({"choices": [{"delta": {}}]}, "unknown"),
        ({}, "unknown"),
        ("not json object", "unknown"),
    ],
)
def test_openai_detection(payload, expected):
    assert _detect("openai_api", payload) == expected
    assert _detect("azure_openai_api", payload) == expected


def test_openai_response_rule_is_checked_before_request_rule():
    payload = {"model": "gpt-4o", "messages": [], "choices": [], "usage": {}}
    assert _detect("openai_api", payload) == "llm.response"


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"content": [], "stop_reason": "end_turn"}, "llm.response"),
        ({"model": "claude", "messages": [], "max_tokens": 100}, "llm.request"),
        ({"model": "claude", "messages": []}, "unknown"),
        ({"type": "content_block_delta", "delta": {}}, "llm.stream_chunk"),
        ({"type": "error", "error": {}}, "llm.error"),
    ],
)
def test_anthropic_detection(payload, expected):
    assert _detect("anthropic_api", payload) == expected


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"candidates": []}, "llm.response"),
        ({"contents": []}, "llm.request"),
        ({"error": {"code": 400}}, "llm.error"),
    ],
)
def test_google_ai_detection(payload, expected):
    assert _detect("google_ai_api", payload) == expected


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"content": [], "stop_reason": "end_turn"}, "llm.response"),
        ({"anthropic_version": "bedrock-2023-05-31", "messages": []}, "llm.request"),
        ({"results": [{"outputText": "hi"}]}, "llm.response"),
        ({"generation": "hi"}, "llm.response"),
        ({"message": "Throttled", "__type": "ThrottlingException"}, "llm.error"),
    ],
)
def test_bedrock_detection(payload, expected):
    assert _detect("aws_bedrock_api", payload) == expected


def test_sample_payloads_detect_as_expected():
    assert _detect("openai_api", _load_sample("openai_chat_response.json")) == "llm.response"
    assert _detect("openai_api", _load_sample("openai_chat_request.json")) == "llm.request"
    assert _detect("anthropic_api", _load_sample("anthropic_message_response.json")) == "llm.response"


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "external_format,payload,expected",
    [
        ("webhook_github", {"action": "opened"}, "webhook.validated"),
        ("webhook_github", {"zen": "Keep it simple."}, "webhook.received"),
        ("webhook_github", [], "unknown"),
        ("webhook_stripe", {"object": "event", "type": "charge.succeeded", "data": {}}, "webhook.validated"),
        ("webhook_stripe", {"object": "charge", "type": "x", "data": {}}, "webhook.received"),
        ("webhook_slack", {"type": "url_verification", "challenge": "abc"}, "webhook.received"),
        ("webhook_slack", {"type": "event_callback", "event": {"type": "message"}}, "webhook.validated"),
        ("webhook_slack", {"command": "/deploy"}, "webhook.validated"),
        ("webhook_generic", {"anything": 1}, "webhook.received"),
        ("webhook_generic", None, "webhook.received"),
    ],
)
def test_webhook_detection(external_format, payload, expected):
    assert _detect(external_format, payload) == expected


def test_sample_webhooks_detect_as_validated():
    assert _detect("webhook_stripe", _load_sample("stripe_payment_intent_succeeded.json")) == "webhook.validated"
    assert _detect("webhook_github", _load_sample("github_push.json")) == "webhook.validated"


# ---------------------------------------------------------------------------
# ERP and databases
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "external_format,payload,expected",
    [
        ("erp_salesforce", {"payload": {"ChangeEventHeader": {}}}, "erp.record_change"),
        ("erp_salesforce", {"totalSize": 0, "records": [], "done": True}, "erp.query_result"),
        ("erp_salesforce", {"errorCode": "INVALID_FIELD"}, "unknown"),
        ("erp_sap", {"specversion": "1.0", "type": "sap.s4.beh.salesorder.v1.SalesOrder.Changed.v1", "data": {}}, "erp.record_change"),
        ("erp_sap", {"d": {"results": []}}, "erp.query_result"),
        ("erp_sap", {"value": []}, "erp.query_result"),
        ("erp_dynamics", {"MessageName": "Update", "PrimaryEntityName": "account"}, "erp.record_change"),
        ("erp_dynamics", {"value": [{"accountid": "1"}]}, "erp.query_result"),
        ("database_postgres", {"rows": []}, "database.query_result"),
        ("database_mongodb", {"cursor": {"firstBatch": []}, "ok": 1}, "database.query_result"),
        ("database_mysql", {"event": "Connect", "user": "app"}, "database.connection_event"),
        ("database_mysql", {"event": "query"}, "unknown"),
    ],
)
def test_erp_and_database_detection(external_format, payload, expected):
    assert _detect(external_format, payload) == expected


def test_sample_salesforce_change_detects_as_record_change():
    payload = _load_sample("salesforce_account_change.json")
    assert _detect("erp_salesforce", payload) == "erp.record_change"


@pytest.mark.parametrize("external_format", ["auth_oauth2", "auth_saml", "auth_oidc", "custom"])
def test_formats_without_rules_are_unknown(external_format):
    assert _detect(external_format, {"sub": "user-1"}) == "unknown"


def test_unregistered_format_has_no_detector():
    with pytest.raises(UnsupportedFormatError):
        _detect("not_a_format", {"sub": "user-1"})
