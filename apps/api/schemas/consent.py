from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.wallet_crypto import normalize_wallet_address
from models.consent import ConsentStatus

# Column widths in models.consent; longer input is a validation failure, not a database one.
PATIENT_ID_MAX_LENGTH = 128
PURPOSE_MAX_LENGTH = 256
WALLET_ADDRESS_MAX_LENGTH = 128
TX_HASH_MAX_LENGTH = 256


class SignedConsentPayload(BaseModel):
    """Creation request: the canonical statement's inputs plus its signature.

    ``wallet_address`` is lowercased on the way in so the stored address is the
    one the registry lookup used.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    patient_id: str = Field(max_length=PATIENT_ID_MAX_LENGTH)
    purpose: str = Field(max_length=PURPOSE_MAX_LENGTH)
    wallet_address: str = Field(max_length=WALLET_ADDRESS_MAX_LENGTH)
    signature: str

    @field_validator("wallet_address")
    @classmethod
    def _normalize_wallet_address(cls, value: str) -> str:
        return normalize_wallet_address(value)


ConsentCreate = SignedConsentPayload


class ConsentStatusUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    status: ConsentStatus
    blockchain_tx_hash: Optional[str] = Field(default=None, max_length=TX_HASH_MAX_LENGTH)


class ConsentOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    patient_id: str
    purpose: str
    wallet_address: str
    signature: str
    status: ConsentStatus
    blockchain_tx_hash: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class AuditEventOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    consent_id: UUID
    action: str
    actor: str
    blockchain_tx_hash: Optional[str] = None
    at: datetime
