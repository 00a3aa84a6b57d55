# tests/test_observability.py
import json
import logging

from summary_chat.errors import FileTooLarge, ThreadNotFound
from summary_chat.llm.client import TokenUsage
from summary_chat.observability.logger import JSONFormatter
from summary_chat.observability.metrics import MetricsTracker
from summary_chat.observability.posthog_client import AnalyticsSink, PostHogAnalytics

from conftest import RecordingAnalytics


class ExplodingAnalytics(AnalyticsSink):

    def _capture(self, distinct_id, event, properties):
        raise ConnectionError("posthog down")


class TestAnalytics:

    def test_ids_are_merged_into_properties(self):
        sink = RecordingAnalytics()

        assert sink.record("pdf_upload", user_id="u1", thread_id=3, message_id=9, properties={"fileSize": 10})

        [event] = sink.events
        assert event.user_id == "u1"
        assert event.properties == {"fileSize": 10, "threadId": 3, "messageId": 9}

    def test_capture_failure_never_raises(self):
        assert ExplodingAnalytics().record("thread_created", user_id="u1") is False

    def test_posthog_disabled_without_key(self, monkeypatch):
        monkeypatch.delenv("POSTHOG_API_KEY", raising=False)

        sink = PostHogAnalytics()

        assert sink.enabled is False
        assert sink.record("summarize_success", user_id="u1") is True
        sink.shutdown()


class TestMetrics:

    def test_success_and_failure_counters(self):
        tracker = MetricsTracker()

        tracker.record_success(1.0, TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15))
        tracker.record_success(3.0)
        tracker.record_failure()

        metrics = tracker.get_metrics()

        assert metrics["generations_total"] == 3
        assert metrics["generations_succeeded"] == 2
        assert metrics["generations_failed"] == 1
        assert metrics["avg_latency"] == 2.0
        assert metrics["total_tokens"] == 15
        assert "latencies" not in metrics

    def test_latency_history_is_bounded(self):
        tracker = MetricsTracker(max_latencies=10)

        for i in range(100):
            tracker.record_success(float(i))

        assert tracker.get_latency_percentile(0) == 90.0
        assert tracker.get_latency_percentile(95) == 99.0


class TestErrorsAndLogging:

    def test_error_body_shape(self):
        assert FileTooLarge("File too large: 11.00MB").to_dict() == {
            "status": 413,
            "message": "File too large: 11.00MB",
        }
        assert ThreadNotFound(5).context == {"thread_id": 5}

    def test_json_formatter_includes_extra_fields(self):
        record = logging.LogRecord("summary_chat.test", logging.INFO, __file__, 1, "thread_created", None, None)
        record.thread_id = 42

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "thread_created"
        assert payload["level"] == "INFO"
        assert payload["thread_id"] == 42
