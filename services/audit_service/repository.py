from sqlalchemy.ext.asyncio import AsyncSession

from .models import AuditLog


class AuditRepository:

    @staticmethod
    async def create(db: AsyncSession, entry: AuditLog) -> AuditLog:
        db.add(entry)
        await db.commit()
        return entry
