from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from shared.config.database import SCHEMAS, Base, engine
from shared.observability import setup_observability
from shared.security import limiter

# Import to register with Base
from services.audit_service.models import AuditLog  # noqa: F401
from services.auth_service.models import Entity, User  # noqa: F401
from .models import Donation  # noqa: F401

from .errors import DonationError, donation_error_handler
from .router import public_router, router

donation_app = FastAPI(
    title="Donation Service",
    version="1.0.0",
    description="Temple donations: gateway orders, payment verification, receipts, exports.",
)

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(donation_app, "donation_service")

# --- SECURITY SETUP ---
donation_app.state.limiter = limiter
donation_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
donation_app.add_exception_handler(DonationError, donation_error_handler)

donation_app.include_router(public_router)
donation_app.include_router(router)


@donation_app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        for schema in SCHEMAS:
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
        await conn.run_sync(Base.metadata.create_all)
