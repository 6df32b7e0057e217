import argparse
import asyncio

from core.consent_authoring import build_and_sign
from core.consent_lifecycle import ConsentLifecycleManager
from core.db import SessionLocal
from core.signature_verify import find_wallet_identity
from core.signing import Ed25519WalletSigner, StaticIdentityProvider
from core.wallet_crypto import generate_keypair_hex
from models.wallet_identity import WalletIdentity


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sign a consent statement with a local wallet key and store it as a pending consent."
    )
    parser.add_argument("--patient-id", required=True, help="Subject the consent is granted for.")
    parser.add_argument("--purpose", required=True, help="Purpose label, e.g. 'Research Study Participation'.")
    parser.add_argument(
        "--private-key",
        default="",
        help="Hex Ed25519 private key. A new key is generated when omitted.",
    )
    parser.add_argument(
        "--register",
        action="store_true",
        help="Register the wallet public key for signature verification if it is unknown.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    private_key = args.private_key.strip()
    generated = not private_key
    if generated:
        _, private_key = generate_keypair_hex()

    signer = Ed25519WalletSigner(private_key)
    payload = asyncio.run(
        build_and_sign(args.patient_id, args.purpose, StaticIdentityProvider(signer.identity), signer)
    )

    db = SessionLocal()
    try:
        if args.register and find_wallet_identity(db, signer.wallet_address) is None:
            db.add(WalletIdentity(wallet_address=signer.wallet_address, public_key=signer.public_key))
            db.commit()
        consent = ConsentLifecycleManager(db).create(payload)

        print("Consent ID:", consent.id)
        print("Status:", consent.status.value)
        print("Wallet Address:", consent.wallet_address)
        if generated:
            print("Private Key (shown once):", private_key)
    finally:
        db.close()


if __name__ == "__main__":
    main()
