"""
Caller access context, resolved from JWT claims.

A temple user is bound to one entity (temple) either directly or through an
assignment; the assignment wins. Permission is "full", "readonly" or "self"
(devotees: their own donations only).
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    TEMPLE_ADMIN = "templeadmin"
    STANDARD_USER = "standarduser"
    MONITORING_USER = "monitoringuser"
    DEVOTEE = "devotee"
    VOLUNTEER = "volunteer"


PERMISSION_FULL = "full"
PERMISSION_READONLY = "readonly"
PERMISSION_SELF = "self"

_DEFAULT_PERMISSIONS = {
    Role.SUPERADMIN.value: PERMISSION_FULL,
    Role.TEMPLE_ADMIN.value: PERMISSION_FULL,
    Role.STANDARD_USER.value: PERMISSION_FULL,
    Role.MONITORING_USER.value: PERMISSION_READONLY,
    Role.VOLUNTEER.value: PERMISSION_READONLY,
    Role.DEVOTEE.value: PERMISSION_SELF,
}

TEMPLE_READ_ROLES = (Role.TEMPLE_ADMIN, Role.STANDARD_USER, Role.MONITORING_USER)
TEMPLE_WRITE_ROLES = (Role.TEMPLE_ADMIN, Role.STANDARD_USER)


def default_permission(role: str) -> str:
    return _DEFAULT_PERMISSIONS.get(role, PERMISSION_SELF)


@dataclass(frozen=True)
class AccessContext:
    user_id: int
    role: str
    direct_entity_id: Optional[int] = None
    assigned_entity_id: Optional[int] = None
    permission_type: str = PERMISSION_SELF

    def accessible_entity_id(self) -> Optional[int]:
        if self.assigned_entity_id is not None:
            return self.assigned_entity_id
        return self.direct_entity_id

    def can_read(self) -> bool:
        return self.permission_type in (PERMISSION_FULL, PERMISSION_READONLY)

    def has_role(self, *roles) -> bool:
        wanted = {r.value if isinstance(r, Role) else r for r in roles}
        return self.role in wanted

    @classmethod
    def from_claims(cls, claims: dict) -> "AccessContext":
        """Raises KeyError/ValueError when `sub` is missing or ids are not integers."""
        role = claims.get("role") or Role.DEVOTEE.value
        return cls(
            user_id=int(claims["sub"]),
            role=role,
            direct_entity_id=_optional_int(claims.get("entity_id")),
            assigned_entity_id=_optional_int(claims.get("assigned_entity_id")),
            permission_type=claims.get("permission") or default_permission(role),
        )


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)
