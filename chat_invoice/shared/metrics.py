"""Prometheus metrics for the invoice pipeline.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Interpretation outcomes (completion vs. fallback)
- Payment stage transitions and auto-learning candidates

Metric names follow https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Interpretation metrics
interpretations_total = Counter(
    "order_interpretations_total",
    "Total order interpretations",
    ["source"],  # completion, fallback
)

completion_duration_seconds = Histogram(
    "completion_duration_seconds",
    "Completion collaborator call duration in seconds",
    ["provider"],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

# Lifecycle metrics
invoices_confirmed_total = Counter(
    "invoices_confirmed_total",
    "Total invoices confirmed and persisted",
    ["payment_stage"],
)

stage_transitions_total = Counter(
    "invoice_stage_transitions_total",
    "Payment stage transition attempts",
    ["transition", "outcome"],  # outcome: success, rejected
)

order_creation_failures_total = Counter(
    "order_creation_failures_total",
    "Order auto-creation failures after final payment",
)

# Auto-learning metrics
learning_candidates_total = Counter(
    "auto_learning_candidates_total",
    "Entities analysed by auto-learning",
    ["kind", "action"],
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
