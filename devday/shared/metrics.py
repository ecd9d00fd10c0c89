from __future__ import annotations

import os
import threading
from collections import deque

import psutil

from .time import now_utc

GENERATION_TIME_WINDOW = 100


class CertificateMetrics:
    """Process-wide request counters for the issuance endpoint."""

    def __init__(self, window: int = GENERATION_TIME_WINDOW):
        self._lock = threading.Lock()
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.generation_times_ms: deque[float] = deque(maxlen=window)
        self.last_error: str | None = None
        self.last_error_time: str | None = None

    def record_request(self) -> None:
        with self._lock:
            self.total_requests += 1

    def record_success(self, elapsed_ms: float) -> None:
        with self._lock:
            self.successful_requests += 1
            self.generation_times_ms.append(elapsed_ms)

    def record_failure(self, error: str | None = None) -> None:
        with self._lock:
            self.failed_requests += 1
            if error:
                self.last_error = error
                self.last_error_time = now_utc().isoformat()

    def average_generation_time(self) -> float:
        with self._lock:
            if not self.generation_times_ms:
                return 0.0
            return sum(self.generation_times_ms) / len(self.generation_times_ms)

    def snapshot(self) -> dict:
        average = self.average_generation_time()
        with self._lock:
            if self.total_requests:
                rate = f"{self.successful_requests / self.total_requests * 100:.2f}%"
            else:
                rate = "No requests yet"
            return {
                "totalRequests": self.total_requests,
                "successfulRequests": self.successful_requests,
                "failedRequests": self.failed_requests,
                "successRate": rate,
                "averageGenerationTimeMs": round(average, 2),
                "lastError": self.last_error,
                "lastErrorTime": self.last_error_time,
            }


def _megabytes(value: int) -> float:
    return round(value / 1024 / 1024, 1)


def process_memory() -> dict:
    """Resident and virtual memory of this worker process."""
    process = psutil.Process(os.getpid())
    info = process.memory_info()
    return {
        "rssMB": _megabytes(info.rss),
        "vmsMB": _megabytes(info.vms),
        "percentage": round(process.memory_percent(), 2),
    }
