"""
Prometheus metrics for the promotion service.

Webhook reception and processing, promotion pull requests, fast forwards and
feedback delivery are tracked here.
"""

from prometheus_client import Counter, Histogram
import time

from gh_promotion.github.models import EventType

EVENT_TYPES = frozenset(EventType)


webhooks_received_total = Counter(
    "gh_promotion_webhooks_received_total",
    "Total number of webhooks received",
    ["event_type"],
)

webhook_processing_duration_seconds = Histogram(
    "gh_promotion_webhook_processing_duration_seconds",
    "Time spent processing webhooks",
    ["event_type"],
)

webhook_processing_errors_total = Counter(
    "gh_promotion_webhook_processing_errors_total",
    "Total number of webhook processing errors",
    ["event_type", "error_type"],
)

webhook_outcomes_total = Counter(
    "gh_promotion_webhook_outcomes_total",
    "Terminal event status of processed webhooks",
    ["event_type", "status"],  # status = pending|success|failure|error|skipped
)

promotion_requests_created_total = Counter(
    "gh_promotion_requests_created_total",
    "Total number of promotion pull requests created",
    ["target"],
)

fast_forwards_total = Counter(
    "gh_promotion_fast_forwards_total",
    "Total number of stage branches fast forwarded",
    ["target"],
)

feedback_errors_total = Counter(
    "gh_promotion_feedback_errors_total",
    "Total number of failed feedback deliveries",
    ["emitter"],  # emitter = commit_status|check_run
)


class MetricsContext:
    """Context manager for timing operations and handling errors with metrics."""

    def __init__(self, histogram, error_counter, labels=None, error_labels=None):
        self.histogram = histogram
        self.error_counter = error_counter
        self.labels = labels or []
        self.error_labels = error_labels or []
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            duration = time.perf_counter() - self.start_time
            self.histogram.labels(*self.labels).observe(duration)

        if exc_type is not None:
            error_type = exc_type.__name__
            self.error_counter.labels(*self.error_labels, error_type).inc()

        return False  # Don't suppress exceptions

    def record_error(self, error_type: str):
        self.error_counter.labels(*self.error_labels, error_type).inc()


def event_label(event_type: str | None) -> str:
    """Label value for ``event_type``; anything not a known event is ``unknown``."""
    if event_type in EVENT_TYPES:
        return event_type
    return "unknown"


def track_webhook_processing(event_type: str):
    """Context manager for tracking webhook processing metrics."""
    return MetricsContext(
        webhook_processing_duration_seconds,
        webhook_processing_errors_total,
        labels=[event_type],
        error_labels=[event_type],
    )
