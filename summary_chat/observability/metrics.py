import threading
from typing import Dict, List


_lock = threading.Lock()


class MetricsTracker:
    """
    In-process counters for generation attempts.

    Feeds the /metrics endpoint. Not persisted; one process, one view.
    """

    def __init__(self, max_latencies: int = 1000):

        self._max_latencies = max_latencies

        self._metrics = {

            "generations_total": 0,
            "generations_succeeded": 0,
            "generations_failed": 0,

            "total_latency": 0.0,
            "avg_latency": 0.0,

            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0,

            # bounded history for percentile calculation
            "latencies": [],

        }

    def record_success(self, latency: float, usage=None):

        with _lock:

            self._metrics["generations_total"] += 1
            self._metrics["generations_succeeded"] += 1

            self._metrics["total_latency"] += latency
            self._metrics["avg_latency"] = (
                self._metrics["total_latency"]
                / self._metrics["generations_succeeded"]
            )

            latencies: List[float] = self._metrics["latencies"]
            latencies.append(latency)
            if len(latencies) > self._max_latencies:
                del latencies[0]

            if usage is not None:
                self._metrics["prompt_tokens"] += usage.prompt_tokens
                self._metrics["completion_tokens"] += usage.completion_tokens
                self._metrics["total_tokens"] += usage.total_tokens

    def record_failure(self):

        with _lock:

            self._metrics["generations_total"] += 1
            self._metrics["generations_failed"] += 1

    def get_latency_percentile(self, percentile: float) -> float:

        latencies: List[float] = self._metrics.get("latencies", [])

        if not latencies:
            return 0.0

        sorted_latencies = sorted(latencies)

        index = int(len(sorted_latencies) * percentile / 100)

        index = min(index, len(sorted_latencies) - 1)

        return sorted_latencies[index]

    def get_metrics(self) -> Dict:

        with _lock:

            snapshot = {k: v for k, v in self._metrics.items() if k != "latencies"}

        snapshot["p95_latency"] = self.get_latency_percentile(95)

        return snapshot
