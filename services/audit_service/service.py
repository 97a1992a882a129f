"""
Audit sink for the donation lifecycle.

Writes go through their own short-lived session so an audit row is committed
even when the caller's unit of work is rolled back, and so the caller's
session is never committed as a side effect of auditing.
"""
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.observability import audit_write_failures_total

from .models import AuditLog
from .repository import AuditRepository

logger = structlog.get_logger(__name__)


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class AuditAction(str, Enum):
    DONATION_INITIATED = "DONATION_INITIATED"
    DONATION_SUCCESS = "DONATION_SUCCESS"
    DONATION_FAILED = "DONATION_FAILED"
    DONATION_ALREADY_PROCESSED = "DONATION_ALREADY_PROCESSED"
    DONATION_VERIFICATION_FAILED = "DONATION_VERIFICATION_FAILED"
    DONATION_UPDATE_FAILED = "DONATION_UPDATE_FAILED"


@runtime_checkable
class AuditSink(Protocol):
    """Implementations must not raise: an audit failure never changes a business outcome."""

    async def log_action(
        self,
        user_id: Optional[int],
        entity_id: Optional[int],
        action: str,
        details: Dict[str, Any],
        ip_address: Optional[str],
        status: str,
    ) -> None:
        ...


class AuditService:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def log_action(
        self,
        user_id: Optional[int],
        entity_id: Optional[int],
        action: str,
        details: Dict[str, Any],
        ip_address: Optional[str],
        status: str,
    ) -> None:
        entry = AuditLog(
            user_id=user_id,
            entity_id=entity_id,
            action=_value(action),
            details=details,
            ip_address=ip_address[:45] if ip_address else None,
            status=_value(status),
        )
        try:
            async with self._session_factory() as db:
                await AuditRepository.create(db, entry)
        except Exception:
            # The business operation has already happened; losing the trail
            # entry is logged and counted, never propagated.
            audit_write_failures_total.inc()
            logger.exception("audit_write_failed", action=entry.action, status=entry.status)


def _value(member) -> str:
    return member.value if isinstance(member, Enum) else str(member)
