"""
Metrics collection for Pool Sniper
Counts notifications, gate rejections and trades, and times RPC round trips
"""

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Dict, Optional
import statistics


@dataclass
class LatencyStats:
    """Summary of recorded latencies for one operation"""
    operation: str
    count: int
    mean: float
    min: float
    max: float


class MetricsCollector:
    """Collects counters and latencies in memory"""

    def __init__(self, max_samples: int = 10000):
        self._latencies: Dict[str, deque] = defaultdict(lambda: deque(maxlen=max_samples))
        self._counters: Dict[str, int] = defaultdict(int)
        self._labeled_counters: Dict[tuple, int] = defaultdict(int)

    def record_latency(self, operation: str, latency_ms: float) -> None:
        """Record one latency sample in milliseconds"""
        self._latencies[operation].append(latency_ms)

    def increment_counter(
        self,
        metric_name: str,
        value: int = 1,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Increment a counter metric

        Args:
            metric_name: Name of the counter
            value: Amount to increment (default 1)
            labels: Optional labels for the metric
        """
        if labels:
            label_key = (metric_name, tuple(sorted(labels.items())))
            self._labeled_counters[label_key] += value
        else:
            self._counters[metric_name] += value

    def get_counter(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """Get current counter value"""
        if labels:
            label_key = (metric_name, tuple(sorted(labels.items())))
            return self._labeled_counters.get(label_key, 0)
        return self._counters.get(metric_name, 0)

    def get_latency_stats(self, operation: str) -> Optional[LatencyStats]:
        """Get latency summary, None when nothing was recorded"""
        samples = list(self._latencies.get(operation, []))
        if not samples:
            return None

        return LatencyStats(
            operation=operation,
            count=len(samples),
            mean=statistics.mean(samples),
            min=min(samples),
            max=max(samples)
        )

    def export_metrics(self) -> Dict:
        """Export all metrics as a JSON-serializable dict"""
        labeled = {}
        for (name, labels), value in self._labeled_counters.items():
            suffix = ",".join(f"{k}={v}" for k, v in labels)
            labeled[f"{name}{{{suffix}}}"] = value

        latencies = {}
        for operation in self._latencies.keys():
            stats = self.get_latency_stats(operation)
            if stats:
                latencies[operation] = {
                    "count": stats.count,
                    "mean": stats.mean,
                    "min": stats.min,
                    "max": stats.max
                }

        return {
            "counters": dict(self._counters),
            "labeled_counters": labeled,
            "latencies": latencies
        }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)"""
        self._latencies.clear()
        self._counters.clear()
        self._labeled_counters.clear()


class LatencyTimer:
    """Context manager for measuring operation latency"""

    def __init__(self, metrics: MetricsCollector, operation: str):
        self.metrics = metrics
        self.operation = operation
        self.start_time: Optional[float] = None
        self.latency_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.latency_ms = (time.perf_counter() - self.start_time) * 1000
            self.metrics.record_latency(self.operation, self.latency_ms)


# Global metrics instance (initialized by main)
_global_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance"""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics
