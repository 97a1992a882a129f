from fastapi import FastAPI
from sqlalchemy import text

from shared.config.database import Base, engine
from shared.observability import setup_observability

from .models import Entity, User  # noqa: F401  registers models with SQLAlchemy Base
from .router import router, public_router

auth_app = FastAPI(
    title="Auth Service",
    version="1.0.0",
    description="Devotee registration, login, and access tokens for the donation service.",
)

setup_observability(auth_app, "auth_service")

auth_app.include_router(router)
auth_app.include_router(public_router)


@auth_app.on_event("startup")
async def startup_event() -> None:
    async with engine.begin() as conn:
        await conn.execute(text("CREATE SCHEMA IF NOT EXISTS auth_schema"))
        await conn.run_sync(Base.metadata.create_all)
