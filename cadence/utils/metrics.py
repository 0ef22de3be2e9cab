"""
Metrics Collection for the recurrence engine.

Counts spawned instances, duplicate-insert no-ops and tick failures.
"""

import time
from typing import Dict, Any, Callable
from collections import defaultdict
from datetime import datetime
from functools import wraps
import threading


class MetricsCollector:
    """Collects and manages metrics for instance spawning."""

    def __init__(self):
        self.metrics = defaultdict(int)
        self.timers = defaultdict(float)
        self.lock = threading.Lock()

        self.metrics["instances_spawned_total"] = 0
        self.metrics["duplicate_instances_total"] = 0
        self.metrics["templates_processed_total"] = 0
        self.metrics["spawn_errors_total"] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        """Increment a counter metric."""
        with self.lock:
            self.metrics[metric_name] += value

    def record_timer(self, metric_name: str, duration: float):
        """Record a timing metric."""
        with self.lock:
            self.timers[metric_name] += duration

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timers": dict(self.timers),
                "timestamp": datetime.utcnow().isoformat()
            }

    def reset(self):
        with self.lock:
            for name in list(self.metrics):
                self.metrics[name] = 0
            self.timers.clear()

    def instance_spawned(self):
        self.increment_counter("instances_spawned_total")

    def duplicate_instance(self):
        self.increment_counter("duplicate_instances_total")

    def template_processed(self):
        self.increment_counter("templates_processed_total")

    def spawn_error(self):
        self.increment_counter("spawn_errors_total")

    def time_operation(self, metric_name: str) -> Callable:
        """Decorator accumulating the wall time spent in the wrapped call."""
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_timer(metric_name, time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics_collector = MetricsCollector()
