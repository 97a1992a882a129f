"""
Environment-driven settings shared by every service in the cluster.

Values are read once at import time. A local `.env` file is honoured for
development; in Docker the variables come from the compose file.
"""
import os
import warnings

from dotenv import load_dotenv

load_dotenv()

# --- Payment gateway (Razorpay) ---
RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_BASE_URL: str = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1")
GATEWAY_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))
DONATION_CURRENCY: str = os.getenv("DONATION_CURRENCY", "INR")

_RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET", "")

if not _RAZORPAY_KEY_SECRET:
    warnings.warn(
        "RAZORPAY_KEY_SECRET is not set. Payment signatures will be checked "
        "against an insecure development secret. Set this env var in production!",
        stacklevel=2,
    )
    _RAZORPAY_KEY_SECRET = "insecure-dev-gateway-secret"

RAZORPAY_KEY_SECRET: str = _RAZORPAY_KEY_SECRET

# --- HTTP surface ---
VERIFY_RATE_LIMIT: str = os.getenv("VERIFY_RATE_LIMIT", "30/minute")
EXPORT_ROW_LIMIT: int = int(os.getenv("EXPORT_ROW_LIMIT", "10000"))
