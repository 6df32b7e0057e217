from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

from core.errors import SigningError
from core.wallet_crypto import derive_wallet_address, normalize_wallet_address, public_key_from_private, sign_message


@dataclass(frozen=True)
class WalletIdentityRef:
    wallet_address: str


class Signer(Protocol):
    async def sign(self, message: str, identity: WalletIdentityRef) -> str: ...


class IdentityProvider(Protocol):
    def current_identity(self) -> WalletIdentityRef | None: ...


class StaticIdentityProvider:
    def __init__(self, identity: WalletIdentityRef | None = None) -> None:
        self._identity = identity

    def connect(self, identity: WalletIdentityRef) -> None:
        self._identity = identity

    def disconnect(self) -> None:
        self._identity = None

    def current_identity(self) -> WalletIdentityRef | None:
        return self._identity


class Ed25519WalletSigner:
    """Signs with a locally held key; stands in for a wallet prompt in scripts and tests."""

    def __init__(self, private_key_hex: str) -> None:
        self._private_key_hex = private_key_hex
        self.public_key = public_key_from_private(private_key_hex)
        self.wallet_address = derive_wallet_address(self.public_key)

    @property
    def identity(self) -> WalletIdentityRef:
        return WalletIdentityRef(wallet_address=self.wallet_address)

    async def sign(self, message: str, identity: WalletIdentityRef) -> str:
        if normalize_wallet_address(identity.wallet_address) != self.wallet_address:
            raise SigningError("Signer does not control the requested wallet")
        await asyncio.sleep(0)
        return sign_message(self._private_key_hex, message)
