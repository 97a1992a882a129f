from .setup import setup_observability
from .metrics import (
    donation_initiated_total,
    donation_verification_total,
    gateway_request_duration_seconds,
    audit_write_failures_total,
)
