"""Builds signed consent creation payloads.

The statement format is part of the stored record's proof: a signature is
only verifiable against the exact string produced by `consent_statement`.
"""

from __future__ import annotations

import asyncio

from core.errors import ConsentError, NoIdentityError, SigningError, ValidationError
from core.logging_utils import log_structured
from core.signing import IdentityProvider, Signer
from schemas.consent import SignedConsentPayload

STATEMENT_TEMPLATE = "I consent to: {purpose} for patient: {patient_id}"


def consent_statement(purpose: str, patient_id: str) -> str:
    return STATEMENT_TEMPLATE.format(purpose=purpose, patient_id=patient_id)


def _require_text(name: str, value: str | None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return value


async def build_and_sign(
    subject_id: str,
    purpose: str,
    identity_provider: IdentityProvider,
    signer: Signer,
) -> SignedConsentPayload:
    identity = identity_provider.current_identity()
    if identity is None:
        raise NoIdentityError("No wallet identity is connected")
    _require_text("patientId", subject_id)
    _require_text("purpose", purpose)

    message = consent_statement(purpose, subject_id)
    try:
        signature = await signer.sign(message, identity)
    except asyncio.CancelledError:
        raise
    except SigningError:
        raise
    except ConsentError as exc:
        raise SigningError(exc.message) from exc
    except Exception as exc:
        raise SigningError(f"Signature request failed: {exc.__class__.__name__}") from exc
    if not signature:
        raise SigningError("Signer returned an empty signature")

    log_structured("consent.signed", wallet_address=identity.wallet_address)
    return SignedConsentPayload(
        patient_id=subject_id,
        purpose=purpose,
        wallet_address=identity.wallet_address,
        signature=signature,
    )
