import statsd
import time
from functools import wraps
from typing import Optional


class MetricsService:
    def __init__(self, host: str = "localhost", port: int = 8125, prefix: str = "socialfeed"):
        self.client = statsd.StatsClient(host=host, port=port, prefix=prefix)

    def increment(self, metric: str, value: int = 1, tags: Optional[dict] = None):
        """Increment a counter"""
        self.client.incr(self._format_metric(metric, tags), value)

    def timing(self, metric: str, value: float, tags: Optional[dict] = None):
        """Record a timing given in seconds"""
        self.client.timing(self._format_metric(metric, tags), value * 1000)

    def timer(self, metric: str, tags: Optional[dict] = None):
        """Context manager for timing"""
        return self.client.timer(self._format_metric(metric, tags))

    def _format_metric(self, metric: str, tags: Optional[dict] = None) -> str:
        if tags:
            tag_str = '.'.join([f"{k}_{v}" for k, v in tags.items()])
            return f"{metric}.{tag_str}"
        return metric


def track_time(metric_name: str):
    """Time an async method of an object carrying an optional `metrics` attribute"""
    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            metrics = getattr(self, "metrics", None)
            start_time = time.time()
            try:
                result = await func(self, *args, **kwargs)
            except Exception:
                if metrics is not None:
                    metrics.timing(f"{metric_name}.error", time.time() - start_time)
                    metrics.increment(f"{metric_name}.error_count")
                raise
            if metrics is not None:
                metrics.timing(f"{metric_name}.success", time.time() - start_time)
            return result
        return wrapper
    return decorator
