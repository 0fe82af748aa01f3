"""
Observability Validation Test

This test validates the observability stack:
1. Metrics collection works (tool calls, latency, voice events)
2. Structured logging carries correlation IDs (user, owner, tool, call)
3. Correlation context nests and unwinds cleanly
4. A dispatched tool call is logged with its tool name and result status

Pass criteria: from one log line you can tell which user, owner and tool
call produced it.
"""

import json
import logging
import asyncio

import pytest


def test_observability_imports():
    """Verify all observability modules import correctly."""
    from core.observability import (
        MetricsCollector, get_metrics,
        get_logger, configure_logging, CorrelationContext, with_correlation,
    )
    assert MetricsCollector is not None
    assert get_metrics is not None
    assert CorrelationContext is not None
    assert with_correlation is not None


class TestMetricsCollector:
    """Test the metrics collection system."""

    def test_singleton_instance(self):
        """MetricsCollector returns same instance."""
        from core.observability.metrics import MetricsCollector
        m1 = MetricsCollector.instance()
        m2 = MetricsCollector.instance()
        assert m1 is m2

    def test_tool_call_tracking(self):
        """Track invoked/failed counts and per-tool status breakdown."""
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector.instance()

        mc.record_tool_call("addIncome", "preview", duration_ms=4.0)
        mc.record_tool_call("addIncome", "applied", duration_ms=6.0)
        mc.record_tool_call("sendInvoiceEmail", "error", duration_ms=20.0)

        snapshot = mc.snapshot()
        assert snapshot["tools"]["invoked"] == 3
        assert snapshot["tools"]["failed"] == 1
        assert snapshot["tools"]["by_tool"]["addIncome"] == {"preview": 1, "applied": 1}
        assert snapshot["latency_ms"]["average"] == 10.0
        assert snapshot["latency_ms"]["p95"] == 20.0

    def test_voice_events(self):
        """Track voice sessions, barge-ins and function calls."""
        from core.observability.metrics import get_metrics
        mc = get_metrics()

        mc.record_voice_event("session_started")
        mc.record_voice_event("barge_in")
        mc.record_voice_event("barge_in")
        mc.record_voice_event("function_call")
        mc.record_voice_event("unknown_event")

        voice = mc.snapshot()["voice"]
        assert voice == {"sessions_started": 1, "barge_ins": 2, "function_calls": 1}

    def test_snapshot_is_json_serializable(self):
        """Snapshot can be returned directly from the /metrics endpoint."""
        from core.observability.metrics import get_metrics
        mc = get_metrics()
        mc.record_tool_call("getInvoices", "success", duration_ms=1.5)
        json.dumps(mc.snapshot())

    def test_reset(self):
        from core.observability.metrics import get_metrics
        mc = get_metrics()
        mc.record_tool_call("getInvoices", "success")
        mc.reset()
        assert mc.snapshot()["tools"]["invoked"] == 0


class TestStructuredLogging:
    """Test structured logging with correlation."""

    def _record(self, message="hello", extra=None):
        record = logging.LogRecord("tools.addIncome", logging.INFO, __file__, 1, message, None, None)
        if extra is not None:
            record.extra_fields = extra
        return record

    def test_correlation_context_merge(self):
        """Merging keeps existing IDs and ignores None values."""
        from core.observability.logging import CorrelationContext
        ctx = CorrelationContext(user_id="user-1", channel="chat")
        merged = ctx.merge(tool_name="addIncome", call_id=None)
        assert merged.to_dict() == {"user_id": "user-1", "channel": "chat", "tool_name": "addIncome"}

    def test_with_correlation_nests_and_restores(self):
        """Inner contexts add fields; leaving restores the outer context."""
        from core.observability.logging import get_correlation_context, with_correlation

        with with_correlation(user_id="user-1"):
            with with_correlation(tool_name="addIncome", owner_id="team-9"):
                inner = get_correlation_context()
                assert inner.user_id == "user-1"
                assert inner.owner_id == "team-9"
            assert get_correlation_context().tool_name is None
        assert get_correlation_context().user_id is None

    def test_structured_formatter_includes_context(self):
        """JSON lines carry correlation IDs and extra fields."""
        from core.observability.logging import StructuredFormatter, with_correlation

        with with_correlation(user_id="user-1", tool_name="addIncome", call_id="call-1"):
            line = StructuredFormatter().format(self._record(extra={"status": "preview"}))

        data = json.loads(line)
        assert data["level"] == "INFO"
        assert data["logger"] == "tools.addIncome"
        assert data["message"] == "hello"
        assert data["user_id"] == "user-1"
        assert data["tool_name"] == "addIncome"
        assert data["call_id"] == "call-1"
        assert data["status"] == "preview"
        assert data["timestamp"].endswith("Z")

    def test_human_formatter_shows_owner_when_different(self):
        from core.observability.logging import HumanReadableFormatter, with_correlation

        with with_correlation(user_id="user-1", owner_id="team-9", tool_name="addIncome"):
            line = HumanReadableFormatter().format(self._record(extra={"status": "applied"}))

        assert "[user-1/owner:team-9/addIncome]" in line
        assert line.endswith("hello status=applied")

    def test_correlated_logger_extra_fields(self, caplog):
        """extra_fields reach the log record."""
        from core.observability.logging import get_logger

        logger = get_logger("tools.test_extra")
        with caplog.at_level(logging.INFO, logger="tools.test_extra"):
            logger.info("Income recorded", extra_fields={"record_id": "abc"})

        records = [r for r in caplog.records if r.name == "tools.test_extra"]
        assert records[0].getMessage() == "Income recorded"
        assert records[0].extra_fields == {"record_id": "abc"}


class TestDispatchObservability:
    """A dispatched call is visible in logs and metrics."""

    def test_tool_completion_logged_with_status(self, dispatcher, caplog):
        with caplog.at_level(logging.INFO, logger="tools.getInvoices"):
            asyncio.run(dispatcher.dispatch("getInvoices", {}, user_id="user-1", call_id="call-42"))

        completed = [r for r in caplog.records if r.getMessage() == "Tool completed: getInvoices"]
        assert completed
        assert completed[0].extra_fields["status"] == "success"
        assert "duration_ms" in completed[0].extra_fields

    def test_failed_calls_counted(self, dispatcher):
        from core.observability.metrics import get_metrics

        asyncio.run(dispatcher.dispatch("addIncome", {"amount": -5}, user_id="user-1"))

        snapshot = get_metrics().snapshot()
        assert snapshot["tools"]["failed"] == 1
        assert snapshot["tools"]["by_tool"]["addIncome"] == {"error": 1}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
