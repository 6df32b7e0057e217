from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.config import get_settings
from core.consent_lifecycle import ConsentLifecycleManager, require_complete
from core.contracts import paginated
from core.deps import get_db, get_notifier
from core.failure_modes import record_operation_failure
from core.notifications import ConsentNotifier
from core.signature_verify import verify_consent_signature
from models.consent import Consent, ConsentStatus
from schemas.consent import AuditEventOut, ConsentCreate, ConsentOut, ConsentStatusUpdate

router = APIRouter(prefix="/consents", tags=["consents"])


def _dump(consent: Consent) -> dict:
    return ConsentOut.model_validate(consent).model_dump(mode="json", by_alias=True)


@router.post(
    "",
    response_model=ConsentOut,
    status_code=201,
    description=(
        "Submit a signed consent. The signature must cover "
        "`I consent to: {purpose} for patient: {patientId}`. The record starts `pending`."
    ),
)
def create_consent(
    payload: ConsentCreate,
    db: Session = Depends(get_db),
    notifier: ConsentNotifier = Depends(get_notifier),
):
    try:
        require_complete(payload)
        verify_consent_signature(db, payload, mode=get_settings().signature_verification)
        return ConsentLifecycleManager(db, notifier).create(payload)
    except Exception as exc:
        record_operation_failure(
            operation="consent.create",
            exc=exc,
            extra_payload={"path": "/consents"},
        )
        raise


@router.get("", response_model=dict, description="Lists consents, optionally filtered by status, patient or wallet.")
def list_consents(
    status: Annotated[ConsentStatus | None, Query()] = None,
    patient_id: Annotated[str | None, Query(alias="patientId")] = None,
    wallet_address: Annotated[str | None, Query(alias="walletAddress")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    db: Session = Depends(get_db),
):
    manager = ConsentLifecycleManager(db)
    filters = {"patient_id": patient_id, "wallet_address": wallet_address}
    items = manager.list(status, limit=limit, offset=offset, **filters)
    total = manager.count(status, **filters)
    return paginated([_dump(item) for item in items], limit=limit, offset=offset, count=total)


@router.get("/{consent_id}", response_model=ConsentOut)
def get_consent(
    consent_id: UUID,
    db: Session = Depends(get_db),
):
    return ConsentLifecycleManager(db).get(consent_id)


@router.patch(
    "/{consent_id}",
    response_model=ConsentOut,
    description=(
        "Moves a pending consent to `active` or `revoked`. `blockchainTxHash` is accepted only with "
        "`active` and must come from the ledger submission. Terminal consents answer 409."
    ),
)
def update_consent_status(
    consent_id: UUID,
    payload: ConsentStatusUpdate,
    db: Session = Depends(get_db),
    notifier: ConsentNotifier = Depends(get_notifier),
):
    try:
        return ConsentLifecycleManager(db, notifier).transition(
            consent_id,
            payload.status,
            anchor=payload.blockchain_tx_hash,
        )
    except Exception as exc:
        record_operation_failure(
            operation="consent.transition",
            exc=exc,
            resource_id=str(consent_id),
            extra_payload={"path": f"/consents/{consent_id}"},
        )
        raise


@router.get("/{consent_id}/audit", response_model=dict, description="Lists audit events for a consent with pagination.")
def get_consent_audit(
    consent_id: UUID,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    db: Session = Depends(get_db),
):
    events, total = ConsentLifecycleManager(db).audit_trail(consent_id, limit=limit, offset=offset)
    data = [AuditEventOut.model_validate(event).model_dump(mode="json", by_alias=True) for event in events]
    return paginated(data, limit=limit, offset=offset, count=total)
