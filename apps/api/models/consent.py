import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, Index, String, Text, event, func, inspect
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base

WRITE_ONCE_FIELDS = ("patient_id", "purpose", "wallet_address", "signature", "created_at")


class ConsentStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"


TERMINAL_STATUSES = frozenset({ConsentStatus.ACTIVE, ConsentStatus.REVOKED})


class Consent(Base):
    __tablename__ = "consents"
    __table_args__ = (
        CheckConstraint(
            "status != 'pending' OR blockchain_tx_hash IS NULL",
            name="ck_consents_pending_without_anchor",
        ),
        Index("ix_consents_status_created_at", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    purpose: Mapped[str] = mapped_column(String(256), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    signature: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ConsentStatus] = mapped_column(
        Enum(
            ConsentStatus,
            name="consentstatus",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ConsentStatus.PENDING,
        nullable=False,
    )
    blockchain_tx_hash: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


@event.listens_for(Consent, "before_update", propagate=True)
def _guard_write_once(_mapper, _connection, target: Consent) -> None:
    state = inspect(target)
    for field in WRITE_ONCE_FIELDS:
        history = state.attrs[field].history
        if history.deleted and history.added and history.deleted[0] != history.added[0]:
            raise ValueError(f"consents.{field} is immutable once set")


@event.listens_for(Consent, "before_delete", propagate=True)
def _prevent_delete(_mapper, _connection, _target) -> None:
    raise ValueError("consents are never deleted; revoke instead")
