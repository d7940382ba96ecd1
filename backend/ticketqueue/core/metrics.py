"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Queue admission metrics
queue_joins = Counter(
    'queue_join_total',
    'Queue join attempts by outcome',
    ['result']  # offered, waiting, rejected
)

queue_join_latency = Histogram(
    'queue_join_latency_seconds',
    'Queue join request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

rate_limit_rejections = Counter(
    'rate_limit_rejections_total',
    'Requests rejected by the rate limiter',
    ['action']
)

# Offer lifecycle metrics
offers_expired = Counter(
    'offers_expired_total',
    'Offers moved to expired',
    ['source']  # timer, sweep, release
)

waitlist_promotions = Counter(
    'waitlist_promotions_total',
    'Waiting entries promoted to offers'
)

# Purchase metrics
purchase_attempts = Counter(
    'purchase_attempts_total',
    'Purchase attempts',
    ['status']  # success, rejected
)

tickets_issued = Counter(
    'tickets_issued_total',
    'Ticket rows created by completed purchases'
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Optimistic lock retries due to event version conflicts',
    ['operation']  # join, promote, purchase
)

# Scheduler metrics
pending_expiry_jobs = Gauge(
    'pending_expiry_jobs',
    'Offer expiry timers registered and not yet fired'
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_join(result: str):
    """Record queue join outcome. Result: offered, waiting, rejected"""
    queue_joins.labels(result=result).inc()


def record_purchase(status: str):
    """Record purchase attempt. Status: success, rejected"""
    purchase_attempts.labels(status=status).inc()


def record_expiry(source: str, count: int = 1):
    """Record offers expired. Source: timer, sweep, release"""
    if count:
        offers_expired.labels(source=source).inc(count)


def record_retry(operation: str):
    db_retries.labels(operation=operation).inc()
