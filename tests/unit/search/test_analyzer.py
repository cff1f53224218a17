"""Unit tests for workflow document analysis."""

import hashlib
import json

import pytest

from workflow_index.domain.model import complexity_for
from workflow_index.errors import ParseError
from workflow_index.search.analyzer import (
    analyze_document,
    classify_trigger,
    describe,
    display_name,
    extract_integrations,
    inspect_document,
    integration_for,
    name_from_filename,
    parse_document,
)


def _raw(payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


class TestClassifyTrigger:
    def test_webhook_outranks_schedule_regardless_of_node_order(self):
        node_types = ["n8n-nodes-base.scheduleTrigger", "n8n-nodes-base.webhook"]
        assert classify_trigger(node_types) == "Webhook"
        assert classify_trigger(list(reversed(node_types))) == "Webhook"

    def test_schedule_outranks_generic_trigger(self):
        assert classify_trigger(["n8n-nodes-base.telegramTrigger", "n8n-nodes-base.cron"]) == "Scheduled"

    def test_generic_trigger_node(self):
        assert classify_trigger(["n8n-nodes-base.telegramTrigger", "n8n-nodes-base.set"]) == "Triggered"

    def test_matching_is_case_insensitive(self):
        assert classify_trigger(["CUSTOM.WEBHOOKRECEIVER"]) == "Webhook"

    def test_manual_trigger_nodes_never_match(self):
        assert classify_trigger(["n8n-nodes-base.manualTrigger", "n8n-nodes-base.slack"]) == "Manual"
        assert classify_trigger(["n8n-nodes-base.start"]) == "Manual"

    def test_empty_node_list_is_manual(self):
        assert classify_trigger([]) == "Manual"

    def test_missing_nodes_is_unknown(self):
        assert classify_trigger(None) == "Unknown"


class TestIntegrations:
    @pytest.mark.parametrize(
        ("node_type", "expected"),
        [
            ("n8n-nodes-base.slack", "Slack"),
            ("n8n-nodes-base.telegramTrigger", "Telegram"),
            ("n8n-nodes-base.httpRequest", "HttpRequest"),
            ("@n8n/n8n-nodes-langchain.openAi", "OpenAi"),
            ("n8n-nodes-base.noOp", None),
            ("n8n-nodes-base.manualTrigger", None),
            ("n8n-nodes-base.scheduleTrigger", None),
            ("n8n-nodes-base.webhook", None),
            ("n8n-nodes-base.stickyNote", None),
            ("n8n-nodes-base.if", None),
        ],
    )
    def test_integration_for(self, node_type, expected):
        assert integration_for(node_type) == expected

    def test_extract_integrations_is_sorted_and_unique(self):
        node_types = [
            "n8n-nodes-base.telegram",
            "n8n-nodes-base.slack",
            "n8n-nodes-base.telegramTrigger",
            "n8n-nodes-base.code",
        ]
        assert extract_integrations(node_types) == ["Slack", "Telegram"]


class TestNames:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("0001_http_api_sync.json", "HTTP API Sync"),
            ("2051_Telegram_Webhook_Automation_Webhook.json", "Telegram Webhook Automation Webhook"),
            ("telegram-bot notifier.json", "Telegram Bot Notifier"),
            ("0042_scheduled_manual.json", "Scheduled Manual"),
        ],
    )
    def test_name_from_filename(self, filename, expected):
        assert name_from_filename(filename) == expected

    def test_declared_name_is_kept(self):
        assert display_name("Order sync", "0001_orders.json") == "Order sync"

    @pytest.mark.parametrize("declared", ["", None, "   ", "My workflow 3", "0001_orders"])
    def test_placeholder_names_fall_back_to_filename(self, declared):
        assert display_name(declared, "0001_orders.json") == "Orders"


class TestDescribe:
    def test_without_integrations(self):
        assert describe("Manual", [], 2, "low") == "Manual workflow with 2 nodes (low complexity)"

    def test_truncates_after_three_integrations(self):
        assert (
            describe("Triggered", ["A", "B", "C", "D", "E"], 20, "high")
            == "Triggered workflow integrating A, B, C, +2 more with 20 nodes (high complexity)"
        )


class TestAnalyzeDocument:
    def test_webhook_with_slack_example(self, payload_factory):
        payload = payload_factory(
            "n8n-nodes-base.webhook",
            "n8n-nodes-base.webhook",
            "n8n-nodes-base.webhook",
            "n8n-nodes-base.slack",
            name="Alert relay",
        )

        record = analyze_document(_raw(payload), "0100_alert_relay.json")

        assert record.trigger_type == "Webhook"
        assert record.integrations == ["Slack"]
        assert record.node_count == 4
        assert record.complexity == "low"
        assert record.name == "Alert relay"
        assert record.description == "Webhook workflow integrating Slack with 4 nodes (low complexity)"
        assert record.analyzed_at is None

    def test_passthrough_fields_digest_and_tags(self, payload_factory):
        payload = payload_factory(
            "n8n-nodes-base.slack",
            id=42,
            active=True,
            createdAt="2024-01-02T03:04:05.000Z",
            updatedAt="2024-02-03T04:05:06.000Z",
            tags=[{"id": "1", "name": "ops"}, "alerts", {"name": "ops"}, ""],
        )
        raw = _raw(payload)

        record = analyze_document(raw, "0007_ops.json")

        assert record.workflow_id == "42"
        assert record.active is True
        assert record.created_at == "2024-01-02T03:04:05.000Z"
        assert record.updated_at == "2024-02-03T04:05:06.000Z"
        assert record.tags == ["alerts", "ops"]
        assert record.file_hash == hashlib.md5(raw).hexdigest()
        assert record.file_size == len(raw)

    def test_document_without_nodes(self):
        record = analyze_document(b'{"name": "Empty"}', "empty.json")
        assert record.node_count == 0
        assert record.trigger_type == "Unknown"
        assert record.integrations == []

    def test_analysis_is_deterministic(self, payload_factory):
        raw = _raw(payload_factory("n8n-nodes-base.hubspot", "n8n-nodes-base.slack", "n8n-nodes-base.gmail"))
        assert analyze_document(raw, "same.json") == analyze_document(raw, "same.json")

    @pytest.mark.parametrize("node_count", [0, 1, 5, 6, 15, 16, 40])
    def test_complexity_follows_node_count(self, payload_factory, node_count):
        raw = _raw(payload_factory(*["n8n-nodes-base.set"] * node_count))
        record = analyze_document(raw, "sized.json")
        assert record.node_count == node_count
        assert record.complexity == complexity_for(node_count)

    def test_utf8_bom_is_accepted(self):
        raw = b"\xef\xbb\xbf" + b'{"name": "Bom", "nodes": []}'
        assert analyze_document(raw, "bom.json").name == "Bom"

    @pytest.mark.parametrize(
        "raw",
        [
            b"{not json",
            b"[1, 2, 3]",
            b'{"nodes": "oops"}',
            b"\xff\xfe\x00",
        ],
    )
    def test_malformed_documents_raise_parse_error(self, raw):
        with pytest.raises(ParseError) as excinfo:
            analyze_document(raw, "broken.json")
        assert excinfo.value.filename == "broken.json"
        assert excinfo.value.code == "parse_error"


def test_parse_document_round_trips_unknown_fields(payload_factory):
    payload = payload_factory("n8n-nodes-base.slack", settings={"executionOrder": "v1"}, pinData={})
    document = parse_document(_raw(payload), "extra.json")
    assert document.to_payload() == payload


def test_inspect_document_reports_histogram_and_issues():
    payload = {
        "nodes": [
            {"name": "A", "type": "n8n-nodes-base.slack", "credentials": {"slackApi": {"id": "1"}}},
            {"name": "B", "type": "n8n-nodes-base.slack"},
            {"name": "C", "type": "n8n-nodes-base.set"},
        ]
    }

    analysis = inspect_document(_raw(payload))

    assert analysis.name == "Unnamed Workflow"
    assert analysis.node_types == {"n8n-nodes-base.slack": 2, "n8n-nodes-base.set": 1}
    assert analysis.integrations == ["Slack"]
    assert analysis.has_credentials is True
    assert analysis.connections == 0
    assert analysis.validation_issues == ["No connections defined"]


def test_uninterpreted_fields_of_any_shape_are_accepted():
    payload = {
        "name": 7,
        "nodes": [
            {"name": 7, "type": "n8n-nodes-base.slack", "credentials": "slackApi"},
            {"name": ["odd"], "type": 12},
            "sticky",
        ],
        "connections": [],
        "tags": "ops",
    }
    raw = _raw(payload)

    record = analyze_document(raw, "0009_odd_shapes.json")

    assert record.node_count == 3
    assert record.integrations == ["Slack"]
    assert record.trigger_type == "Manual"
    assert record.name == "7"
    assert record.tags == []
    assert parse_document(raw, "0009_odd_shapes.json").to_payload() == payload

    analysis = inspect_document(raw)
    assert analysis.connections == 0
    assert analysis.has_credentials is True
    assert analysis.node_types == {"n8n-nodes-base.slack": 1, "": 2}
