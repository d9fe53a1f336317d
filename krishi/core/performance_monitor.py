# krishi/core/performance_monitor.py - Request timing, degradation counts and process resources

import time
import psutil
import logging
from typing import Dict, Any, Optional
from collections import Counter, deque

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """Track advisory request latency, degraded answers and memory use"""

    def __init__(self, max_history: int = 100, slow_request_seconds: float = 20.0):
        self.max_history = max_history
        self.slow_request_seconds = slow_request_seconds
        self.request_times = deque(maxlen=max_history)
        self.memory_usage = deque(maxlen=max_history)
        self.start_time = time.time()
        self.total_requests = 0
        self.error_count = 0
        self.degraded = Counter()

    def record_request(self, duration: float, success: bool = True, degradation: Optional[str] = None):
        """Record one finished request; ``degradation`` names the fallback used, if any"""
        self.request_times.append(duration)
        self.total_requests += 1
        if not success:
            self.error_count += 1
        if degradation:
            self.degraded[degradation] += 1

        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        self.memory_usage.append(memory_mb)

        if duration > self.slow_request_seconds:
            logger.warning(f"Slow request: {duration:.2f}s")
        if memory_mb > 1500:
            logger.warning(f"High memory usage: {memory_mb:.2f}MB")

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            'uptime_seconds': time.time() - self.start_time,
            'total_requests': self.total_requests,
            'error_count': self.error_count,
            'error_rate': self.error_count / max(self.total_requests, 1),
            'degraded': dict(self.degraded),
            'degraded_rate': sum(self.degraded.values()) / max(self.total_requests, 1),
            'current_memory_mb': psutil.Process().memory_info().rss / 1024 / 1024,
            'cpu_percent': psutil.cpu_percent(interval=None),
        }

        if self.request_times:
            times_list = sorted(self.request_times)
            stats.update({
                'avg_request_time': sum(times_list) / len(times_list),
                'max_request_time': times_list[-1],
                'min_request_time': times_list[0],
                'p95_request_time': times_list[min(int(len(times_list) * 0.95), len(times_list) - 1)],
            })

        if self.memory_usage:
            stats.update({
                'avg_memory_mb': sum(self.memory_usage) / len(self.memory_usage),
                'max_memory_mb': max(self.memory_usage),
            })

        return stats
