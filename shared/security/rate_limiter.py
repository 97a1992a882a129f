from fastapi import Request
from slowapi import Limiter

from .dependencies import get_client_ip
from .jwt_handler import verify_access_token


def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Uses the user ID from a valid bearer token, otherwise the client IP
    (gateway callbacks to /verify are unauthenticated and keyed by IP).
    """
    auth_header = request.headers.get("Authorization")

    if auth_header and auth_header.startswith("Bearer "):
        payload = verify_access_token(auth_header.split(" ", 1)[1])
        if payload and "sub" in payload:
            return f"user:{payload['sub']}"

    return f"ip:{get_client_ip(request)}"


limiter = Limiter(key_func=user_id_or_ip)
