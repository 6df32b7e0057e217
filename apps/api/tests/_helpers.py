from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.consent_authoring import consent_statement
from core.db import Base
from core.wallet_crypto import derive_wallet_address, generate_keypair_hex, public_key_from_private, sign_message
from schemas.consent import SignedConsentPayload


def make_memory_session() -> tuple[Session, object]:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    return session, engine


def signed_payload(patient_id: str, purpose: str, private_key_hex: str | None = None) -> SignedConsentPayload:
    if private_key_hex is None:
        _, private_key_hex = generate_keypair_hex()
    public_key = public_key_from_private(private_key_hex)
    return SignedConsentPayload(
        patient_id=patient_id,
        purpose=purpose,
        wallet_address=derive_wallet_address(public_key),
        signature=sign_message(private_key_hex, consent_statement(purpose, patient_id)),
    )
