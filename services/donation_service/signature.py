import hashlib
import hmac
from typing import Optional


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """Hex HMAC-SHA256 of "<order_id>|<payment_id>" keyed with the gateway secret."""
    if not secret:
        raise ValueError("gateway secret is not configured")
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    order_id: Optional[str],
    payment_id: Optional[str],
    supplied_signature: Optional[str],
) -> bool:
    """
    Checks a gateway callback signature in constant time.

    Malformed input (non-strings, empty or non-ASCII signature) is a mismatch,
    not an error. Only a missing secret raises.
    """
    if not secret:
        raise ValueError("gateway secret is not configured")
    if not all(isinstance(v, str) for v in (order_id, payment_id, supplied_signature)):
        return False
    if not supplied_signature or not supplied_signature.isascii():
        return False

    expected = compute_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected.encode("ascii"), supplied_signature.encode("ascii"))
