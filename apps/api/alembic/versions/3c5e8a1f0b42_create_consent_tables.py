"""create consent tables

Revision ID: 3c5e8a1f0b42
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c5e8a1f0b42"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CONSENT_STATUSES = ("pending", "active", "revoked")


def upgrade() -> None:
    op.create_table(
        "consents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("patient_id", sa.String(length=128), nullable=False),
        sa.Column("purpose", sa.String(length=256), nullable=False),
        sa.Column("wallet_address", sa.String(length=128), nullable=False),
        sa.Column("signature", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*CONSENT_STATUSES, name="consentstatus", native_enum=False),
            nullable=False,
        ),
        sa.Column("blockchain_tx_hash", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status != 'pending' OR blockchain_tx_hash IS NULL",
            name="ck_consents_pending_without_anchor",
        ),
    )
    op.create_index("ix_consents_patient_id", "consents", ["patient_id"])
    op.create_index("ix_consents_wallet_address", "consents", ["wallet_address"])
    op.create_index("ix_consents_status_created_at", "consents", ["status", "created_at"])

    op.create_table(
        "consent_audit_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "consent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("consents.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=False, server_default=sa.text("'system'")),
        sa.Column("blockchain_tx_hash", sa.String(length=256), nullable=True),
        sa.Column("at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_consent_audit_events_consent_id", "consent_audit_events", ["consent_id"])

    op.create_table(
        "wallet_identities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("wallet_address", sa.String(length=128), nullable=False),
        sa.Column("public_key", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("wallet_address", name="uq_wallet_identities_wallet_address"),
    )


def downgrade() -> None:
    op.drop_table("wallet_identities")
    op.drop_index("ix_consent_audit_events_consent_id", table_name="consent_audit_events")
    op.drop_table("consent_audit_events")
    op.drop_index("ix_consents_status_created_at", table_name="consents")
    op.drop_index("ix_consents_wallet_address", table_name="consents")
    op.drop_index("ix_consents_patient_id", table_name="consents")
    op.drop_table("consents")
