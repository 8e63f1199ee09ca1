# tests/test_observability.py
import json
import logging
from datetime import datetime, timezone

from docanalysis.observability.logger import (
    JSONFormatter,
    RequestContextFilter,
    request_id_var,
)
from docanalysis.observability.metrics import MetricsTracker
from docanalysis.observability.posthog_client import PostHogClient


def make_record(message="Document indexed", **extra):
    record = logging.LogRecord(
        name="docanalysis.workflow.indexing",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_extra_fields_are_serialized(self):
        record = make_record(
            document_id="doc-1",
            processed_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        )

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Document indexed"
        assert payload["service"] == "docanalysis"
        assert payload["document_id"] == "doc-1"
        assert payload["processed_at"].startswith("2024-05-01")

    def test_spanish_text_is_not_escaped(self):
        output = JSONFormatter().format(make_record("Informe generado: Auditoría"))

        assert "Auditoría" in output

    def test_extra_never_overwrites_base_fields(self):
        payload = json.loads(JSONFormatter().format(make_record(level="custom")))

        assert payload["level"] == "INFO"
        assert payload["extra_level"] == "custom"


class TestRequestContextFilter:

    def test_request_id_from_context(self):
        token = request_id_var.set("req-42")
        try:
            record = make_record()
            RequestContextFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert record.request_id == "req-42"

    def test_explicit_request_id_wins(self):
        token = request_id_var.set("req-42")
        try:
            record = make_record(request_id="req-explicit")
            RequestContextFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert record.request_id == "req-explicit"

    def test_no_context_leaves_record_untouched(self):
        record = make_record()

        assert RequestContextFilter().filter(record) is True
        assert not hasattr(record, "request_id")


class TestMetricsTracker:

    def test_counts_and_latency(self):
        tracker = MetricsTracker()

        tracker.record_success(0.2)
        tracker.record_success(0.4)
        tracker.record_failure()

        metrics = tracker.get_metrics()

        assert metrics["total_requests"] == 3
        assert metrics["successful_requests"] == 2
        assert metrics["failed_requests"] == 1
        assert abs(metrics["avg_latency"] - 0.3) < 1e-9
        assert metrics["p95_latency"] >= 0.2


class RecordingPosthog:

    def __init__(self, fail=False):
        self.events = []
        self.fail = fail
        self.shut_down = False

    def capture(self, distinct_id, event, properties):
        if self.fail:
            raise RuntimeError("posthog unavailable")
        self.events.append((distinct_id, event, properties))

    def shutdown(self):
        self.shut_down = True


class TestPostHogClient:

    def test_disabled_without_key(self, settings):
        client = PostHogClient(settings)

        client.track_search("req-1", "proj-1", "monto", results=0, top_score=None)
        client.shutdown()

        assert client.enabled is False

    def test_indexing_events(self, settings):
        recorder = RecordingPosthog()
        client = PostHogClient(settings, client=recorder)

        client.track_document_indexed("req-1", "doc-1", "proj-1", "completed", chunks=3, latency=0.12345)
        client.track_document_indexed("req-2", "doc-2", "proj-1", "failed", chunks=0, latency=1.0)

        assert [event for _, event, _ in recorder.events] == [
            "document_indexed",
            "document_indexing_failed",
        ]
        assert recorder.events[0][2]["latency_seconds"] == 0.123

    def test_search_event_records_query_length_only(self, settings):
        recorder = RecordingPosthog()
        client = PostHogClient(settings, client=recorder)

        client.track_search("req-1", "proj-1", "monto del contrato", results=2, top_score=0.91)

        properties = recorder.events[0][2]
        assert properties["query_length"] == len("monto del contrato")
        assert "query" not in properties

    def test_capture_failure_is_swallowed(self, settings):
        client = PostHogClient(settings, client=RecordingPosthog(fail=True))

        client.track_report_generated("req-1", "proj-1", "executive", "fallback", latency=0.5)

    def test_shutdown_flushes_client(self, settings):
        recorder = RecordingPosthog()

        PostHogClient(settings, client=recorder).shutdown()

        assert recorder.shut_down is True
