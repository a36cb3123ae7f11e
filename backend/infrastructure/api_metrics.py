"""
API Metrics Tracker - monitoring for external calls made by the agent pipeline

Tracks:
- Request counts (success/error/rate limited)
- Response times
- Last error details

Services:
- near_rpc
- near_faucet
- ref_indexer
- near_ai
- supabase
"""

import time
from datetime import datetime, timedelta
from typing import Dict, Optional, Any
from dataclasses import dataclass, field, asdict
from collections import defaultdict, deque
import logging

logger = logging.getLogger(__name__)


@dataclass
class APICallMetric:
    """Single API call record"""
    service: str
    endpoint: str
    status: str  # 'success', 'error', 'timeout', 'rate_limited'
    response_time_ms: float
    timestamp: str
    error_message: Optional[str] = None
    status_code: Optional[int] = None


@dataclass
class ServiceMetrics:
    """Aggregated metrics for a service"""
    total_calls: int = 0
    success_count: int = 0
    error_count: int = 0
    timeout_count: int = 0
    rate_limit_count: int = 0
    avg_response_time_ms: float = 0
    min_response_time_ms: float = float('inf')
    max_response_time_ms: float = 0
    last_error: Optional[str] = None
    last_error_time: Optional[str] = None
    last_success_time: Optional[str] = None

    _recent_times: deque = field(default_factory=lambda: deque(maxlen=100))


class APIMetricsTracker:
    """
    Centralized API metrics tracking

    Usage:
        metrics = APIMetricsTracker()

        with APICallTimer(metrics, 'near_rpc', 'query') as timer:
            response = await client.post(url, json=payload)
            timer.status_code = response.status_code

        stats = metrics.get_all_stats()
    """

    SLOW_CALL_MS = 2000

    def __init__(self, max_recent_calls: int = 1000):
        self._metrics: Dict[str, ServiceMetrics] = defaultdict(ServiceMetrics)
        self._recent_calls: deque = deque(maxlen=max_recent_calls)
        self._start_time = datetime.utcnow()

    def record_call(
        self,
        service: str,
        endpoint: str,
        status: str,
        response_time_s: float,
        error_message: str = None,
        status_code: int = None
    ):
        """Record an API call"""
        response_time_ms = response_time_s * 1000
        now = datetime.utcnow()
        service = service.lower()

        call = APICallMetric(
            service=service,
            endpoint=endpoint,
            status=status,
            response_time_ms=round(response_time_ms, 2),
            timestamp=now.isoformat(),
            error_message=error_message,
            status_code=status_code
        )
        self._recent_calls.append(asdict(call))

        m = self._metrics[service]
        m.total_calls += 1

        if status == 'success':
            m.success_count += 1
            m.last_success_time = now.isoformat()
        elif status == 'error':
            m.error_count += 1
            m.last_error = error_message
            m.last_error_time = now.isoformat()
        elif status == 'timeout':
            m.timeout_count += 1
            m.last_error = 'Timeout'
            m.last_error_time = now.isoformat()
        elif status == 'rate_limited':
            m.rate_limit_count += 1
            m.last_error = 'Rate limited'
            m.last_error_time = now.isoformat()

        m._recent_times.append(response_time_ms)
        m.avg_response_time_ms = sum(m._recent_times) / len(m._recent_times)
        m.min_response_time_ms = min(m.min_response_time_ms, response_time_ms)
        m.max_response_time_ms = max(m.max_response_time_ms, response_time_ms)

        if response_time_ms > self.SLOW_CALL_MS:
            logger.warning(f"[APIMetrics] Slow call: {service} {endpoint} took {response_time_ms:.0f}ms")

    def get_service_stats(self, service: str) -> Dict[str, Any]:
        """Get stats for a specific service"""
        m = self._metrics.get(service.lower())
        if not m:
            return {'service': service, 'status': 'no_data'}

        return {
            'service': service,
            'total_calls': m.total_calls,
            'success_count': m.success_count,
            'error_count': m.error_count,
            'timeout_count': m.timeout_count,
            'rate_limit_count': m.rate_limit_count,
            'success_rate': round((m.success_count / m.total_calls) * 100, 1) if m.total_calls > 0 else 0,
            'avg_response_ms': round(m.avg_response_time_ms, 1),
            'min_response_ms': round(m.min_response_time_ms, 1) if m.min_response_time_ms != float('inf') else 0,
            'max_response_ms': round(m.max_response_time_ms, 1),
            'last_error': m.last_error,
            'last_error_time': m.last_error_time,
            'last_success_time': m.last_success_time,
        }

    def get_all_stats(self) -> Dict[str, Any]:
        """Get stats for all services seen so far"""
        uptime = (datetime.utcnow() - self._start_time).total_seconds()

        services = {}
        total_calls = 0
        total_errors = 0

        for service_name in list(self._metrics.keys()):
            stats = self.get_service_stats(service_name)
            services[service_name] = stats
            total_calls += stats.get('total_calls', 0)
            total_errors += stats.get('error_count', 0)

        return {
            'uptime_seconds': round(uptime, 0),
            'uptime_human': str(timedelta(seconds=int(uptime))),
            'started_at': self._start_time.isoformat(),
            'total_api_calls': total_calls,
            'total_errors': total_errors,
            'overall_success_rate': round(((total_calls - total_errors) / total_calls) * 100, 1) if total_calls > 0 else 100,
            'services': services
        }

    def get_recent_errors(self, limit: int = 20) -> list:
        """Get recent error calls"""
        errors = [
            c for c in reversed(self._recent_calls)
            if c['status'] in ('error', 'timeout', 'rate_limited')
        ]
        return errors[:limit]


class APICallTimer:
    """Context manager for tracking API calls"""

    def __init__(self, tracker: Optional[APIMetricsTracker], service: str, endpoint: str = ''):
        self.tracker = tracker
        self.service = service
        self.endpoint = endpoint
        self.start = None
        self.status = 'success'
        self.error_message = None
        self.status_code = None

    def __enter__(self):
        self.start = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.tracker is None:
            return False

        duration = time.time() - self.start

        if exc_type:
            error_msg = str(exc_val)
            if self.status_code == 429 or '429' in error_msg or 'rate limit' in error_msg.lower():
                self.status = 'rate_limited'
            elif 'timeout' in error_msg.lower() or 'timed out' in error_msg.lower():
                self.status = 'timeout'
            else:
                self.status = 'error'
            self.error_message = error_msg[:200]

        self.tracker.record_call(
            service=self.service,
            endpoint=self.endpoint,
            status=self.status,
            response_time_s=duration,
            error_message=self.error_message,
            status_code=self.status_code
        )

        return False  # Don't suppress exceptions
