from __future__ import annotations

import hashlib
import hmac

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey


def verify_public_key_format(public_key_hex: str) -> None:
    if not isinstance(public_key_hex, str):
        raise ValueError("public_key must be a hex string")
    if len(public_key_hex) != 64:
        raise ValueError("public_key must be 32 bytes encoded as 64 hex characters")
    try:
        raw = bytes.fromhex(public_key_hex)
    except ValueError as exc:
        raise ValueError("public_key must be valid lowercase/uppercase hex") from exc
    if len(raw) != 32:
        raise ValueError("public_key must decode to exactly 32 bytes")


def derive_wallet_address(public_key_hex: str) -> str:
    """Wallet address: last 20 bytes of SHA-256 over the raw public key, 0x-prefixed."""
    verify_public_key_format(public_key_hex)
    digest = hashlib.sha256(bytes.fromhex(public_key_hex)).hexdigest()
    return "0x" + digest[-40:]


def normalize_wallet_address(address: str) -> str:
    return address.strip().lower()


def generate_keypair_hex() -> tuple[str, str]:
    private_key = Ed25519PrivateKey.generate()
    private_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return public_key_from_private(private_bytes.hex()), private_bytes.hex()


def public_key_from_private(private_key_hex: str) -> str:
    private_key = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(private_key_hex))
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return public_bytes.hex()


def sign_message(private_key_hex: str, message: str) -> str:
    private_key = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(private_key_hex))
    return "0x" + private_key.sign(message.encode("utf-8")).hex()


def verify_message_signature(public_key_hex: str, message: str, signature: str) -> bool:
    normalized = signature[2:] if signature.startswith(("0x", "0X")) else signature
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        raw_signature = bytes.fromhex(normalized)
        public_key.verify(raw_signature, message.encode("utf-8"))
    except (InvalidSignature, ValueError):
        return False
    return hmac.compare_digest(raw_signature.hex(), normalized.lower())
