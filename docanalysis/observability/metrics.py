# docanalysis/observability/metrics.py

import threading
from collections import deque
from typing import Deque


# Latency history kept for percentile calculation
MAX_LATENCY_SAMPLES = 1000


class MetricsTracker:
    """
    In-process request counters and latency percentiles.
    """

    def __init__(self, max_samples: int = MAX_LATENCY_SAMPLES):

        self._lock = threading.Lock()

        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._total_latency = 0.0
        self._latencies: Deque[float] = deque(maxlen=max_samples)

    def record_success(self, latency: float):

        with self._lock:
            self._total_requests += 1
            self._successful_requests += 1
            self._total_latency += latency
            self._latencies.append(latency)

    def record_failure(self):

        with self._lock:
            self._total_requests += 1
            self._failed_requests += 1

    def get_latency_percentile(self, percentile: float) -> float:

        with self._lock:
            latencies = sorted(self._latencies)

        if not latencies:
            return 0.0

        index = min(int(len(latencies) * percentile / 100), len(latencies) - 1)

        return latencies[index]

    def get_metrics(self) -> dict:

        with self._lock:
            successful = self._successful_requests
            snapshot = {
                "total_requests": self._total_requests,
                "successful_requests": successful,
                "failed_requests": self._failed_requests,
                "avg_latency": self._total_latency / successful if successful else 0.0,
            }

        snapshot["p95_latency"] = self.get_latency_percentile(95)

        return snapshot


metrics_tracker = MetricsTracker()
