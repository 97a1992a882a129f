from fastapi import FastAPI
from sqlalchemy import text

from shared.config.database import SCHEMAS, Base, engine

# IMPORTANT: import models so they register with Base
from services.auth_service import models as auth_models  # noqa: F401
from services.audit_service import models as audit_models  # noqa: F401
from services.donation_service import models as donation_models  # noqa: F401

from services.auth_service.main import auth_app
from services.donation_service.main import donation_app

app = FastAPI(title="Temple Donations Cluster")


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        for schema in SCHEMAS:
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))

        await conn.run_sync(Base.metadata.create_all)


app.mount("/auth", auth_app)
app.mount("/donations", donation_app)
