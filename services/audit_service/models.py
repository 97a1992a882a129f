from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from shared.config.database import Base


class AuditLog(Base):
    """Append-only trail. Rows are never updated or deleted by this codebase."""

    __tablename__ = "audit_logs"
    __table_args__ = {"schema": "audit_schema"}

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    entity_id = Column(Integer, nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    status = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
