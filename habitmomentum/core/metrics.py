"""
In-process metrics for the habit service, exported as Prometheus text.

Counters and gauges are keyed by their label values. Everything lives in one
process-wide registry (``METRICS``) that ``/metrics`` renders and tests reset.
"""

from __future__ import annotations

import re
import threading
import time
from typing import Dict, Iterable, List, Optional, Tuple

LabelValues = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help_text: str = "", label_names: Optional[Iterable[str]] = None):
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names or ())
        self._series: Dict[LabelValues, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        labels = labels or {}
        unknown = set(labels) - set(self.label_names)
        if unknown:
            raise ValueError(f"{self.name}: unknown labels {sorted(unknown)}")
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._series.get(self._key(labels), 0.0)

    def render(self) -> List[str]:
        lines = []
        if self.help_text:
            lines.append(f"# HELP {self.name} {self.help_text}")
        lines.append(f"# TYPE {self.name} {self.kind}")
        with self._lock:
            for values, amount in sorted(self._series.items()):
                label_str = ",".join(f'{n}="{_escape(v)}"' for n, v in zip(self.label_names, values))
                lines.append(f"{self.name}{{{label_str}}} {amount}" if label_str else f"{self.name} {amount}")
        return lines

    def reset(self) -> None:
        with self._lock:
            self._series.clear()


class Counter(_Metric):
    kind = "counter"

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counters only go up")
        key = self._key(labels)
        with self._lock:
            self._series[key] = self._series.get(key, 0.0) + float(amount)


class Gauge(_Metric):
    kind = "gauge"

    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._series[key] = float(value)


class MetricsRegistry:
    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _register(self, cls, name: str, help_text: str, label_names) -> _Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = cls(name, help_text, label_names)
                self._metrics[name] = metric
            elif not isinstance(metric, cls):
                raise ValueError(f"metric {name} already registered as {metric.kind}")
            return metric

    def counter(self, name: str, help_text: str = "", label_names: Optional[Iterable[str]] = None) -> Counter:
        return self._register(Counter, name, help_text, label_names)

    def gauge(self, name: str, help_text: str = "", label_names: Optional[Iterable[str]] = None) -> Gauge:
        return self._register(Gauge, name, help_text, label_names)

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for name in sorted(self._metrics):
            lines.extend(self._metrics[name].render())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        for metric in self._metrics.values():
            metric.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "http_requests_total", "HTTP requests by route and status", ["method", "path", "status"]
)
habit_record_writes_total = METRICS.counter(
    "habit_record_writes_total", "Habit records written", ["kind", "source"]
)
sweep_habits_processed_total = METRICS.counter(
    "sweep_habits_processed_total", "Habits closed out by the missed-habit sweep", ["pass"]
)
sweep_habit_errors_total = METRICS.counter(
    "sweep_habit_errors_total", "Habits the sweep failed to process", ["pass"]
)
sweep_slow_habits_total = METRICS.counter(
    "sweep_slow_habits_total", "Habits exceeding the sweep soft timeout", ["pass"]
)
sweep_last_run_timestamp = METRICS.gauge(
    "sweep_last_run_timestamp", "Unix time the sweep pass last finished", ["pass"]
)


def mark_sweep_finished(pass_name: str) -> None:
    sweep_last_run_timestamp.set(time.time(), {"pass": pass_name})


# Path segments that are ids (uuid hex, numbers) collapse to :id
_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F]{32}|[0-9a-fA-F-]{36})$")


def normalize_path(path: str) -> str:
    """Keep per-route cardinality bounded."""
    segments = [":id" if _ID_SEGMENT.match(s) else s for s in path.split("/") if s]
    return "/" + "/".join(segments)
