from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.deps import get_db
from core.errors import NotFoundError, ValidationError
from core.logging_utils import log_structured
from core.signature_verify import find_wallet_identity
from core.wallet_crypto import derive_wallet_address
from models.wallet_identity import WalletIdentity
from schemas.identity import WalletIdentityCreate, WalletIdentityOut

router = APIRouter(prefix="/identities", tags=["identities"])


@router.post(
    "",
    response_model=WalletIdentityOut,
    status_code=201,
    description="Registers the public key behind a wallet address so consent signatures can be verified.",
)
def register_wallet_identity(
    payload: WalletIdentityCreate,
    db: Session = Depends(get_db),
):
    public_key = payload.public_key.strip().lower()
    try:
        wallet_address = derive_wallet_address(public_key)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    if find_wallet_identity(db, wallet_address) is not None:
        raise HTTPException(status_code=409, detail="Wallet identity already registered")

    identity = WalletIdentity(wallet_address=wallet_address, public_key=public_key)
    try:
        db.add(identity)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(identity)
    log_structured("identity.registered", wallet_address=wallet_address)
    return identity


@router.get("/{wallet_address}", response_model=WalletIdentityOut)
def get_wallet_identity(
    wallet_address: str,
    db: Session = Depends(get_db),
):
    identity = find_wallet_identity(db, wallet_address)
    if identity is None:
        raise NotFoundError("Wallet identity not found")
    return identity
