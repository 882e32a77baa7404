"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Validation metrics
validation_results = Counter(
    'booking_validations_total',
    'Booking validation outcomes',
    ['outcome']  # valid, invalid, infrastructure_error
)

validation_latency = Histogram(
    'booking_validation_latency_seconds',
    'Booking validation latency (static rules + conflict query)',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Write path metrics
booking_writes = Counter(
    'booking_writes_total',
    'Booking write attempts at the final gate',
    ['result']  # created, blocked, conflict, error
)

status_transitions = Counter(
    'booking_status_transitions_total',
    'Approve/reject transitions',
    ['status']
)

# Real-time metrics
sse_channels = Gauge(
    'sse_open_channels',
    'Number of registered event-stream channels'
)

broadcast_events = Counter(
    'broadcast_events_total',
    'Events fanned out to channels',
    ['event']
)

dropped_channels = Counter(
    'sse_dropped_channels_total',
    'Channels removed after a failed write'
)

change_events = Counter(
    'booking_change_events_total',
    'Normalized booking change events',
    ['origin', 'event_type']  # origin: explicit, feed
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_validation(valid: bool, infrastructure_error: bool = False):
    """Record validator outcome."""
    if infrastructure_error:
        outcome = "infrastructure_error"
    else:
        outcome = "valid" if valid else "invalid"
    validation_results.labels(outcome=outcome).inc()


def record_booking_write(result: str):
    """Record final-gate write. Result: created, blocked, conflict, error"""
    booking_writes.labels(result=result).inc()


def record_change_event(origin: str, event_type: str):
    change_events.labels(origin=origin, event_type=event_type).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
