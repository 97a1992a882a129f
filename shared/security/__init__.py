from .jwt_handler import create_access_token, verify_access_token
from .access import AccessContext, Role
from .dependencies import (
    get_access_context,
    get_client_ip,
    get_current_user,
    require_roles,
    resolve_entity_id,
)
from .rate_limiter import limiter, user_id_or_ip

__all__ = [
    "create_access_token",
    "verify_access_token",
    "AccessContext",
    "Role",
    "get_access_context",
    "get_client_ip",
    "get_current_user",
    "require_roles",
    "resolve_entity_id",
    "limiter",
    "user_id_or_ip"
]
