"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Admission metrics
admission_requests = Counter(
    'rsvp_admission_requests_total',
    'Admission decisions by operation and outcome',
    ['operation', 'outcome']  # join/leave/capacity; ok, capacity_exceeded, already_member, ...
)

admission_latency = Histogram(
    'rsvp_admission_latency_seconds',
    'Admission decision latency',
    ['operation'],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Pre-check passed but the atomic mutation did not apply
lost_races = Counter(
    'rsvp_admission_lost_races_total',
    'Conditional mutations rejected after a passing pre-check',
    ['operation']
)

# Store metrics
store_operations = Counter(
    'rsvp_store_operations_total',
    'Membership store operations',
    ['backend', 'operation']
)

store_errors = Counter(
    'rsvp_store_errors_total',
    'Transient membership store failures',
    ['backend']
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_admission(operation: str, outcome: str):
    """Record an admission decision. Outcome: ok or an error kind."""
    admission_requests.labels(operation=operation, outcome=outcome).inc()


def record_lost_race(operation: str):
    lost_races.labels(operation=operation).inc()


def record_store_operation(backend: str, operation: str):
    store_operations.labels(backend=backend, operation=operation).inc()


def record_store_error(backend: str):
    store_errors.labels(backend=backend).inc()
