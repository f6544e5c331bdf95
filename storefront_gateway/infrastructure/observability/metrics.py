"""Prometheus metrics for purchase outcomes, risk decisions, loyalty points, and store health"""

from prometheus_client import Counter, Histogram

# Purchase metrics
purchase_outcome_counter = Counter(
    "storefront_purchase_outcome_total",
    "Orchestrator operation outcomes",
    ["operation", "outcome"],  # outcome: success | error code
)

payment_transition_counter = Counter(
    "storefront_payment_transition_total",
    "Payment state transitions committed",
    ["to_status"],
)

# Risk metrics
risk_decision_counter = Counter(
    "storefront_risk_decision_total",
    "Transaction-level fraud decisions",
    ["outcome"],  # approved | rejected
)

risk_fail_open_counter = Counter(
    "storefront_risk_fail_open_total",
    "Risk assessments that failed and defaulted to approval",
    ["stage"],  # user | transaction
)

# Loyalty metrics
loyalty_points_counter = Counter(
    "storefront_loyalty_points_total",
    "Loyalty points moved through the ledger",
    ["direction"],  # credited | debited | expired
)

# Store and collaborator health
store_retry_counter = Counter(
    "storefront_store_read_retries_total",
    "Ledger store reads retried after a transient failure",
)

collaborator_failure_counter = Counter(
    "storefront_collaborator_failures_total",
    "Failed catalog/identity calls",
    ["service"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_outcome(operation: str, error_code: str | None) -> None:
    """Record orchestrator outcome for success/failure rate dashboards"""
    purchase_outcome_counter.labels(operation=operation, outcome=error_code or "success").inc()


def record_risk_decision(approved: bool) -> None:
    risk_decision_counter.labels(outcome="approved" if approved else "rejected").inc()
