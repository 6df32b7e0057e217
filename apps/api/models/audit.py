import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, func, text
from sqlalchemy.dialects.postgresql import UUID

from core.db import Base


class AuditEvent(Base):
    __tablename__ = "consent_audit_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    consent_id = Column(UUID(as_uuid=True), ForeignKey("consents.id", ondelete="RESTRICT"), nullable=False, index=True)
    action = Column(String(64), nullable=False)
    actor = Column(String(128), nullable=False, default="system", server_default=text("'system'"))
    blockchain_tx_hash = Column(String(256), nullable=True)
    at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
