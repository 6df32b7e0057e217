"""State machine and query surface over stored consent records.

A record starts ``pending`` and moves exactly once, to ``active`` or
``revoked``. The move is a compare-and-swap on ``status`` so concurrent
transitions of one record serialize in the database: one wins, the rest
observe :class:`InvalidTransitionError`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from core.errors import InvalidTransitionError, NotFoundError, ValidationError
from core.logging_utils import log_structured
from core.notifications import ConsentChange, ConsentNotifier
from core.observability import (
    METRIC_CONSENT_ACTIVATED,
    METRIC_CONSENT_CREATED,
    METRIC_CONSENT_REVOKED,
    METRIC_TRANSITION_REJECTED,
    increment_metric,
)
from core.wallet_crypto import normalize_wallet_address
from models.audit import AuditEvent
from models.consent import Consent, ConsentStatus
from schemas.consent import SignedConsentPayload

_TRANSITION_ACTIONS = {
    ConsentStatus.ACTIVE: ("consent.activated", METRIC_CONSENT_ACTIVATED),
    ConsentStatus.REVOKED: ("consent.revoked", METRIC_CONSENT_REVOKED),
}


def _coerce_status(value: ConsentStatus | str) -> ConsentStatus:
    try:
        return ConsentStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown consent status: {value}") from exc


def _status_value(status: ConsentStatus | str) -> str:
    return status.value if hasattr(status, "value") else str(status)


def require_complete(payload: SignedConsentPayload) -> None:
    """Raise ValidationError unless all four statement fields are filled in."""
    missing = [
        name
        for name, value in (
            ("patientId", payload.patient_id),
            ("purpose", payload.purpose),
            ("walletAddress", payload.wallet_address),
            ("signature", payload.signature),
        )
        if not value or not value.strip()
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


class ConsentLifecycleManager:
    def __init__(self, db: Session, notifier: ConsentNotifier | None = None) -> None:
        self.db = db
        self.notifier = notifier

    def create(self, payload: SignedConsentPayload) -> Consent:
        require_complete(payload)

        try:
            consent = Consent(
                id=uuid.uuid4(),
                patient_id=payload.patient_id,
                purpose=payload.purpose,
                wallet_address=payload.wallet_address,
                signature=payload.signature,
                status=ConsentStatus.PENDING,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(consent)
            self.db.flush()
            self.db.add(
                AuditEvent(
                    consent_id=consent.id,
                    action="consent.created",
                    actor=payload.wallet_address,
                    at=consent.created_at,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(consent)

        increment_metric(METRIC_CONSENT_CREATED)
        log_structured("consent.created", consent_id=consent.id, wallet_address=consent.wallet_address)
        self._publish("consent.created", consent)
        return consent

    def transition(
        self,
        consent_id: uuid.UUID,
        target_status: ConsentStatus | str,
        anchor: str | None = None,
        *,
        actor: str = "system",
    ) -> Consent:
        target = _coerce_status(target_status)
        if target == ConsentStatus.PENDING:
            raise ValidationError("Consents can only transition to active or revoked")
        if anchor is not None:
            if target != ConsentStatus.ACTIVE:
                raise ValidationError("A ledger anchor may only accompany activation")
            if not anchor.strip():
                raise ValidationError("blockchainTxHash must not be blank")

        action, metric = _TRANSITION_ACTIONS[target]
        values: dict[str, object] = {
            "status": target,
            "updated_at": datetime.now(timezone.utc),
        }
        if anchor is not None:
            values["blockchain_tx_hash"] = anchor

        try:
            result = self.db.execute(
                update(Consent)
                .where(Consent.id == consent_id, Consent.status == ConsentStatus.PENDING)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                self._reject_transition(consent_id, target)
            self.db.add(
                AuditEvent(
                    consent_id=consent_id,
                    action=action,
                    actor=actor,
                    blockchain_tx_hash=anchor,
                    at=values["updated_at"],
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        consent = self.db.get(Consent, consent_id, populate_existing=True)
        increment_metric(metric)
        log_structured(action, consent_id=consent_id, status=target)
        self._publish(action, consent)
        return consent

    def _reject_transition(self, consent_id: uuid.UUID, target: ConsentStatus) -> None:
        current = self.db.get(Consent, consent_id, populate_existing=True)
        if current is None:
            raise NotFoundError("Consent not found")
        current_status = _status_value(current.status)
        increment_metric(METRIC_TRANSITION_REJECTED, reason=current_status)
        log_structured(
            "consent.transition_rejected",
            consent_id=consent_id,
            status=current_status,
            target_status=target,
        )
        raise InvalidTransitionError(
            f"Consent is already {current_status}",
            current_status=current_status,
        )

    def get(self, consent_id: uuid.UUID) -> Consent:
        consent = self.db.get(Consent, consent_id)
        if consent is None:
            raise NotFoundError("Consent not found")
        return consent

    def _filtered(self, stmt, status, patient_id, wallet_address):
        if status is not None:
            stmt = stmt.where(Consent.status == _coerce_status(status))
        if patient_id:
            stmt = stmt.where(Consent.patient_id == patient_id)
        if wallet_address:
            stmt = stmt.where(Consent.wallet_address == normalize_wallet_address(wallet_address))
        return stmt

    def list(
        self,
        status: ConsentStatus | str | None = None,
        *,
        patient_id: str | None = None,
        wallet_address: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Consent]:
        stmt = self._filtered(select(Consent), status, patient_id, wallet_address)
        stmt = stmt.order_by(Consent.created_at.desc(), Consent.id.asc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.scalars(stmt).all())

    def count(
        self,
        status: ConsentStatus | str | None = None,
        *,
        patient_id: str | None = None,
        wallet_address: str | None = None,
    ) -> int:
        stmt = self._filtered(select(func.count()).select_from(Consent), status, patient_id, wallet_address)
        return int(self.db.scalar(stmt) or 0)

    def audit_trail(self, consent_id: uuid.UUID, *, limit: int = 50, offset: int = 0) -> tuple[list[AuditEvent], int]:
        self.get(consent_id)
        base_filter = AuditEvent.consent_id == consent_id
        total = int(self.db.scalar(select(func.count()).select_from(AuditEvent).where(base_filter)) or 0)
        events = self.db.scalars(
            select(AuditEvent).where(base_filter).order_by(AuditEvent.at.asc(), AuditEvent.id.asc()).offset(offset).limit(limit)
        ).all()
        return list(events), total

    def _publish(self, event_type: str, consent: Consent) -> None:
        if self.notifier is None:
            return
        self.notifier.publish(
            ConsentChange(
                event_type=event_type,
                consent_id=consent.id,
                status=_status_value(consent.status),
                occurred_at=datetime.now(timezone.utc),
            )
        )
