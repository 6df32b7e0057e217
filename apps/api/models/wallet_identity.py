import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Text, UniqueConstraint, event, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base
from core.wallet_crypto import derive_wallet_address, verify_public_key_format


class WalletIdentity(Base):
    """Public key registered for a wallet address; the signature verifier's trust root."""

    __tablename__ = "wallet_identities"
    __table_args__ = (
        UniqueConstraint("wallet_address", name="uq_wallet_identities_wallet_address"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    public_key: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


@event.listens_for(WalletIdentity, "before_insert", propagate=True)
def _validate_before_insert(_mapper, _connection, target: WalletIdentity) -> None:
    verify_public_key_format(target.public_key)
    if derive_wallet_address(target.public_key) != target.wallet_address:
        raise ValueError("public_key does not match wallet_address")


@event.listens_for(WalletIdentity, "before_update", propagate=True)
def _prevent_update(_mapper, _connection, _target) -> None:
    raise ValueError("wallet_identities is append-only")


@event.listens_for(WalletIdentity, "before_delete", propagate=True)
def _prevent_delete(_mapper, _connection, _target) -> None:
    raise ValueError("wallet_identities is append-only")
