import ipaddress
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from .access import AccessContext
from .jwt_handler import verify_access_token

# Defines the expected header format (Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

ENTITY_HEADER = "X-Entity-ID"


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_access_context(
    request: Request, token: str = Depends(oauth2_scheme)
) -> AccessContext:
    """Dependency to validate the JWT and build the caller's AccessContext."""
    if not token:
        raise _credentials_exception()

    payload = verify_access_token(token)
    if payload is None:
        raise _credentials_exception()

    try:
        ctx = AccessContext.from_claims(payload)
    except (KeyError, TypeError, ValueError):
        raise _credentials_exception()

    # Stored for downstream use (rate limiting, audit)
    request.state.user_id = str(ctx.user_id)
    return ctx


async def get_current_user(ctx: AccessContext = Depends(get_access_context)) -> str:
    """Dependency returning only the user ID (sub)."""
    return str(ctx.user_id)


def require_roles(*roles):
    """Dependency factory: rejects callers whose role is not listed."""

    async def _checker(ctx: AccessContext = Depends(get_access_context)) -> AccessContext:
        if not ctx.has_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this operation",
            )
        return ctx

    return _checker


_CLIENT_IP_HEADERS = ("X-Forwarded-For", "X-Real-IP", "CF-Connecting-IP", "X-Forwarded")


def _valid_ip(value: str) -> Optional[str]:
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def get_client_ip(request: Request) -> str:
    """
    First proxy header holding a well-formed IP (only the first hop of a
    forwarded list counts), else the socket peer. Junk header values are
    ignored so they never reach the audit trail or the rate-limit key.
    """
    for header in _CLIENT_IP_HEADERS:
        raw = request.headers.get(header)
        if raw:
            ip = _valid_ip(raw.split(",")[0])
            if ip:
                return ip
    if request.client:
        return request.client.host
    return ""


def resolve_entity_id(request: Request, ctx: AccessContext) -> Optional[int]:
    """
    The entity a request targets: X-Entity-ID header, then `entity_id` query
    parameter, then the caller's accessible entity.
    """
    raw = request.headers.get(ENTITY_HEADER) or request.query_params.get("entity_id")
    if raw:
        try:
            return int(raw)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid entity id",
            )
    return ctx.accessible_entity_id()
