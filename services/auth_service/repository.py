from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import User


class UserRepository:
    """Emails are stored and looked up lower-cased."""

    @staticmethod
    async def add_if_absent(db: AsyncSession, user: User) -> Optional[User]:
        """Inserts the user; None when the email is already taken (unique index)."""
        user.email = user.email.lower()
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            return None
        await db.refresh(user)
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
        return await db.get(User, user_id)

    @staticmethod
    async def find_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()
