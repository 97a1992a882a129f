"""
Accounts and token issuing.

Self-registration always creates a devotee. Temple staff accounts (role and
entity binding) are provisioned by the entity service; the token simply
carries whatever the user row says, and donation endpoints build their
AccessContext from those claims.
"""
import structlog
from fastapi import HTTPException, status
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from shared.security.access import Role, default_permission
from shared.security.jwt_handler import create_access_token

from .models import User
from .repository import UserRepository
from .schemas import TokenResponse, UserCreate, UserLogin

logger = structlog.get_logger(__name__)

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def token_claims(user: User) -> dict:
    claims = {
        "sub": str(user.id),
        "role": user.role,
        "permission": default_permission(user.role),
    }
    if user.entity_id is not None:
        claims["entity_id"] = user.entity_id
    return claims


class AuthService:

    @staticmethod
    def _hash_password(password: str) -> str:
        return _pwd_context.hash(password)

    @staticmethod
    def _verify_password(plain: str, hashed: str) -> bool:
        return _pwd_context.verify(plain, hashed)

    @staticmethod
    async def register(db: AsyncSession, data: UserCreate) -> User:
        user = await UserRepository.add_if_absent(
            db,
            User(
                email=data.email,
                full_name=data.full_name,
                hashed_password=AuthService._hash_password(data.password),
                role=Role.DEVOTEE.value,
            ),
        )
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email already registered",
            )
        logger.info("user_registered", user_id=user.id)
        return user

    @staticmethod
    async def login(db: AsyncSession, data: UserLogin) -> TokenResponse:
        user = await UserRepository.find_by_email(db, data.email)
        if not user or not AuthService._verify_password(data.password, user.hashed_password):
            logger.warning("login_failed")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is disabled",
            )
        return TokenResponse(access_token=create_access_token(data=token_claims(user)))

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: int) -> User:
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user
