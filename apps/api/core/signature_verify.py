"""Boundary check binding a consent signature to its wallet.

Runs in the HTTP layer before a record is created. The lifecycle manager
never calls it, so stored records are not re-verified on read.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.consent_authoring import consent_statement
from core.errors import SignatureRejectedError
from core.logging_utils import log_structured
from core.observability import (
    METRIC_SIGNATURE_VERIFICATION_FAILED,
    METRIC_SIGNATURE_VERIFICATION_SKIPPED,
    increment_metric,
)
from core.wallet_crypto import normalize_wallet_address, verify_message_signature
from models.wallet_identity import WalletIdentity
from schemas.consent import SignedConsentPayload


def find_wallet_identity(db: Session, wallet_address: str) -> WalletIdentity | None:
    return db.scalar(
        select(WalletIdentity).where(WalletIdentity.wallet_address == normalize_wallet_address(wallet_address))
    )


def verify_consent_signature(db: Session, payload: SignedConsentPayload, *, mode: str) -> bool:
    """Return True when the signature was checked and holds.

    ``required`` rejects unknown wallets, ``optional`` skips them, ``disabled``
    checks nothing. A signature that fails against a registered key is always
    rejected unless checking is disabled.
    """
    if mode == "disabled":
        return False

    identity = find_wallet_identity(db, payload.wallet_address)
    if identity is None:
        if mode == "required":
            increment_metric(METRIC_SIGNATURE_VERIFICATION_FAILED, reason="unknown_wallet")
            raise SignatureRejectedError("Wallet address is not registered")
        increment_metric(METRIC_SIGNATURE_VERIFICATION_SKIPPED, reason="unknown_wallet")
        return False

    message = consent_statement(payload.purpose, payload.patient_id)
    if not verify_message_signature(identity.public_key, message, payload.signature):
        increment_metric(METRIC_SIGNATURE_VERIFICATION_FAILED, reason="bad_signature")
        log_structured("consent.signature_rejected", wallet_address=identity.wallet_address, mode=mode)
        raise SignatureRejectedError("Signature does not match the consent statement")
    return True
