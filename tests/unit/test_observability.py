"""Unit tests for observability module."""

import json
import logging

from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY
import pytest

from workflow_index.observability import (
    OPERATION_COUNT,
    OPERATION_LATENCY,
    JsonFormatter,
    configure_logging,
    create_span,
    get_metrics,
    get_metrics_content_type,
    get_trace_context,
    init_tracing,
    metrics as metrics_module,
    operation_context,
    set_trace_context,
    tracing as tracing_module,
    track_latency,
)
from workflow_index.observability.context import span_context


def _record(msg="test message", level=logging.INFO, name="workflow_index.search.indexer"):
    return logging.LogRecord(name=name, level=level, pathname="test.py", lineno=1, msg=msg, args=(), exc_info=None)


@pytest.mark.unit
class TestJsonFormatter:
    """Tests for structured JSON logging."""

    def test_format_includes_trace_context(self):
        data = json.loads(JsonFormatter().format(_record()))
        assert data["message"] == "test message"
        assert data["level"] == "INFO"
        assert data["component"] == "indexer"
        assert "timestamp" in data
        assert len(data["trace_id"]) == 32

    def test_format_includes_extra_fields(self):
        record = _record()
        record.filename_hint = "0001_slack.json"
        data = json.loads(JsonFormatter().format(record))
        assert data["filename_hint"] == "0001_slack.json"
        assert "pathname" not in data

    def test_format_truncates_and_redacts(self):
        record = _record(msg="x" * 5000)
        record.api_key = "secret"
        data = json.loads(JsonFormatter().format(record))
        assert data["message"].endswith("...")
        assert data["api_key"] == "[REDACTED]"

    def test_format_tags_operation(self):
        with operation_context("reindex"):
            data = json.loads(JsonFormatter().format(_record()))
        assert data["operation"] == "reindex"

    def test_json_default_handles_set_and_bytes(self):
        formatter = JsonFormatter()
        assert formatter._json_default({3, 1, 2}) == [1, 2, 3]
        assert formatter._json_default(b"ok") == "ok"


@pytest.mark.unit
class TestTraceContext:
    def test_get_trace_context_generates_ids(self):
        ctx = get_trace_context()
        assert len(ctx["trace_id"]) == 32
        assert len(ctx["span_id"]) == 16

    def test_span_context_binds_and_restores_ids(self):
        with operation_context("query") as outer:
            with span_context("dd" * 16, "cc" * 8) as ctx:
                assert (ctx["trace_id"], ctx["span_id"], ctx["operation"]) == ("dd" * 16, "cc" * 8, "query")
            ctx = get_trace_context()
            assert (ctx["trace_id"], ctx["span_id"]) == (outer["trace_id"], outer["span_id"])

    def test_operation_context_is_restored(self):
        set_trace_context("aa" * 16, "bb" * 8)
        with operation_context("stats") as ctx:
            assert ctx["operation"] == "stats"
        assert "operation" not in get_trace_context()

    def test_each_operation_starts_its_own_trace(self):
        before = get_trace_context()["trace_id"]
        with operation_context("stats") as first:
            first_trace = first["trace_id"]
            with operation_context("query") as nested:
                assert nested["trace_id"] == first_trace
        with operation_context("stats") as second:
            second_trace = second["trace_id"]

        assert len({before, first_trace, second_trace}) == 3
        assert get_trace_context()["trace_id"] == before


@pytest.mark.unit
class TestTracing:
    @pytest.fixture
    def exporter(self):
        exporter = InMemorySpanExporter()
        init_tracing("test-service", span_processors=[SimpleSpanProcessor(exporter)])
        yield exporter
        tracing_module._tracer_holder["tracer"] = None

    def test_create_span_records_attributes(self, exporter):
        with create_span("catalog.query", attributes={"catalog.query": "slack"}):
            pass
        (span,) = exporter.get_finished_spans()
        assert span.name == "catalog.query"
        assert span.attributes["catalog.query"] == "slack"

    def test_create_span_binds_log_context_to_span_ids(self, exporter):
        with operation_context("query"), create_span("catalog.query") as span:
            ctx = get_trace_context()
            span_ids = span.get_span_context()
            assert ctx["trace_id"] == format(span_ids.trace_id, "032x")
            assert ctx["span_id"] == format(span_ids.span_id, "016x")
            assert ctx["operation"] == "query"
        assert "operation" not in get_trace_context()

    def test_create_span_records_exceptions(self, exporter):
        with pytest.raises(RuntimeError), create_span("catalog.reindex"):
            raise RuntimeError("boom")
        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.events[0].name == "exception"

    def test_init_tracing_applies_resource_attributes(self):
        provider = init_tracing("test-service", resource_attributes={"service.version": "2.0.0"})
        assert provider.resource.attributes["service.version"] == "2.0.0"

    def test_get_tracer_initializes_when_missing(self):
        tracing_module._tracer_holder["tracer"] = None
        assert tracing_module.get_tracer() is not None


@pytest.mark.unit
class TestMetrics:
    def test_track_latency_observes_histogram(self):
        labels = {"operation": "latency-check"}
        before = REGISTRY.get_sample_value("workflow_index_operation_latency_seconds_count", labels) or 0.0
        with track_latency(OPERATION_LATENCY, **labels):
            pass
        assert REGISTRY.get_sample_value("workflow_index_operation_latency_seconds_count", labels) == before + 1

    def test_counter_appears_in_exposition(self):
        OPERATION_COUNT.labels(operation="exposition-check", status="ok").inc()
        assert b'workflow_index_operations_total{operation="exposition-check",status="ok"}' in get_metrics()

    def test_gauge_tracks_absolute_value(self):
        metrics_module.INDEX_DOC_COUNT.labels(store="metrics.db").set(7)
        metrics_module.INDEX_DOC_COUNT.labels(store="metrics.db").set(3)
        assert REGISTRY.get_sample_value("workflow_index_document_count", {"store": "metrics.db"}) == 3

    def test_metric_bridge_unknown_kind_raises(self):
        bad_metric = metrics_module.MetricBridge(
            metrics_module._OPERATION_COUNT_PROM,
            otel_name="bad_metric",
            otel_description="bad",
            otel_kind="unknown",
        )
        with pytest.raises(ValueError, match="Unknown metric kind"):
            bad_metric.inc({"operation": "bad", "status": "ok"}, 1.0)

    def test_get_metrics_content_type(self):
        assert get_metrics_content_type() == metrics_module.CONTENT_TYPE_LATEST


@pytest.mark.unit
def test_configure_logging_installs_json_handler_and_levels():
    root = logging.getLogger()
    previous_handlers = root.handlers[:]
    previous_level = root.level
    try:
        configure_logging("warning", json_output=True, logger_levels={"workflow_index.search": "debug"})
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("workflow_index.search").level == logging.DEBUG
    finally:
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)
        logging.getLogger("workflow_index.search").setLevel(logging.NOTSET)
