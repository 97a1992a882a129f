from prometheus_client import Counter, Histogram

# Business Metrics
donation_initiated_total = Counter(
    "temple_donation_initiated_total",
    "Donation orders requested from the payment gateway",
    ["status"]  # Labels: 'success', 'failure'
)

donation_verification_total = Counter(
    "temple_donation_verification_total",
    "Payment verification attempts by outcome",
    ["outcome"]  # Labels: 'success', 'failed', 'already_processed', 'rejected'
)

gateway_request_duration_seconds = Histogram(
    "temple_gateway_request_duration_seconds",
    "Latency of payment gateway calls in seconds",
    ["operation"]  # Labels: 'create_order', 'fetch_payment'
)

audit_write_failures_total = Counter(
    "temple_audit_write_failures_total",
    "Audit events that could not be persisted"
)
