"""
Metrics Collection for Tool Dispatch

Collects in-process metrics for:
- Tool invocations (per tool, per result status)
- Dispatch latency (average, p95, per tool)
- Voice sessions (started, barge-ins, function calls)
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class ToolMetrics:
    """Counters for tool invocations."""
    invoked: int = 0
    failed: int = 0

    # tool name -> status -> count
    by_tool: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: defaultdict(int)))


@dataclass
class TimingMetrics:
    """Dispatch latency samples (last N kept for percentiles)."""
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000
    by_tool: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, tool_name: str = None):
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if tool_name:
            self.by_tool[tool_name].append(duration_ms)
            if len(self.by_tool[tool_name]) > self.max_samples:
                self.by_tool[tool_name] = self.by_tool[tool_name][-self.max_samples:]

    def get_average(self, tool_name: str = None) -> float:
        samples = self.by_tool.get(tool_name, []) if tool_name else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, tool_name: str = None) -> float:
        samples = self.by_tool.get(tool_name, []) if tool_name else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


@dataclass
class VoiceMetrics:
    sessions_started: int = 0
    barge_ins: int = 0
    function_calls: int = 0


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_tool_call("addIncome", status="preview", duration_ms=4.2)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.tools = ToolMetrics()
        self.timings = TimingMetrics()
        self.voice = VoiceMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def record_tool_call(self, tool_name: str, status: str, duration_ms: float = None):
        """Record one dispatched tool call and its result status."""
        with self._lock:
            self.tools.invoked += 1
            if status == "error":
                self.tools.failed += 1
            self.tools.by_tool[tool_name][status] += 1
            if duration_ms is not None:
                self.timings.add_sample(duration_ms, tool_name)

    def record_voice_event(self, event: str):
        """Record a voice session event: 'session_started', 'barge_in', 'function_call'."""
        with self._lock:
            if event == "session_started":
                self.voice.sessions_started += 1
            elif event == "barge_in":
                self.voice.barge_ins += 1
            elif event == "function_call":
                self.voice.function_calls += 1

    def snapshot(self) -> Dict[str, Any]:
        """Current metrics as a JSON-serializable dict."""
        with self._lock:
            return {
                "tools": {
                    "invoked": self.tools.invoked,
                    "failed": self.tools.failed,
                    "by_tool": {name: dict(statuses) for name, statuses in self.tools.by_tool.items()},
                },
                "latency_ms": {
                    "average": round(self.timings.get_average(), 2),
                    "p95": round(self.timings.get_p95(), 2),
                },
                "voice": {
                    "sessions_started": self.voice.sessions_started,
                    "barge_ins": self.voice.barge_ins,
                    "function_calls": self.voice.function_calls,
                },
            }

    def reset(self):
        """Clear all metrics (used by tests)."""
        with self._lock:
            self.tools = ToolMetrics()
            self.timings = TimingMetrics()
            self.voice = VoiceMetrics()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()
