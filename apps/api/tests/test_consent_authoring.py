import asyncio
import unittest
from unittest.mock import AsyncMock

from core.consent_authoring import build_and_sign, consent_statement
from core.errors import NoIdentityError, SigningError, ValidationError
from core.signing import Ed25519WalletSigner, StaticIdentityProvider, WalletIdentityRef
from core.wallet_crypto import generate_keypair_hex, verify_message_signature


class ConsentAuthoringTests(unittest.TestCase):
    def setUp(self) -> None:
        _, private_key = generate_keypair_hex()
        self.signer = Ed25519WalletSigner(private_key)
        self.identities = StaticIdentityProvider(self.signer.identity)

    def test_statement_format_is_exact(self) -> None:
        self.assertEqual(
            consent_statement("Research Study Participation", "patient-001"),
            "I consent to: Research Study Participation for patient: patient-001",
        )

    def test_signed_payload_verifies_against_statement(self) -> None:
        payload = asyncio.run(
            build_and_sign("patient-001", "Data Sharing with Research Institution", self.identities, self.signer)
        )
        self.assertEqual(payload.patient_id, "patient-001")
        self.assertEqual(payload.purpose, "Data Sharing with Research Institution")
        self.assertEqual(payload.wallet_address, self.signer.wallet_address)
        self.assertTrue(
            verify_message_signature(
                self.signer.public_key,
                "I consent to: Data Sharing with Research Institution for patient: patient-001",
                payload.signature,
            )
        )

    def test_payload_serializes_with_wire_field_names(self) -> None:
        payload = asyncio.run(build_and_sign("patient-001", "Insurance Provider Access", self.identities, self.signer))
        dumped = payload.model_dump(by_alias=True)
        self.assertEqual(set(dumped), {"patientId", "purpose", "walletAddress", "signature"})

    def test_empty_purpose_fails_before_signing(self) -> None:
        signer = AsyncMock()
        with self.assertRaises(ValidationError):
            asyncio.run(build_and_sign("patient-002", "", self.identities, signer))
        signer.sign.assert_not_called()

    def test_blank_subject_fails_before_signing(self) -> None:
        signer = AsyncMock()
        with self.assertRaises(ValidationError):
            asyncio.run(build_and_sign("   ", "Research Study Participation", self.identities, signer))
        signer.sign.assert_not_called()

    def test_no_connected_identity(self) -> None:
        signer = AsyncMock()
        with self.assertRaises(NoIdentityError):
            asyncio.run(build_and_sign("patient-001", "Research Study Participation", StaticIdentityProvider(), signer))
        signer.sign.assert_not_called()

    def test_signer_rejection_becomes_signing_error(self) -> None:
        signer = AsyncMock()
        signer.sign.side_effect = RuntimeError("user rejected request")
        with self.assertRaises(SigningError):
            asyncio.run(build_and_sign("patient-001", "Research Study Participation", self.identities, signer))

    def test_empty_signature_is_rejected(self) -> None:
        signer = AsyncMock()
        signer.sign.return_value = ""
        with self.assertRaises(SigningError):
            asyncio.run(build_and_sign("patient-001", "Research Study Participation", self.identities, signer))

    def test_signer_refuses_foreign_wallet(self) -> None:
        foreign = StaticIdentityProvider(WalletIdentityRef(wallet_address="0x" + "ab" * 20))
        with self.assertRaises(SigningError):
            asyncio.run(build_and_sign("patient-001", "Research Study Participation", foreign, self.signer))

    def test_cancellation_while_waiting_for_wallet(self) -> None:
        class _PromptingSigner:
            def __init__(self) -> None:
                self.prompted = asyncio.Event()

            async def sign(self, message, identity):
                self.prompted.set()
                await asyncio.sleep(60)
                return "0xnever"

        async def _run() -> None:
            signer = _PromptingSigner()
            task = asyncio.create_task(
                build_and_sign("patient-001", "Research Study Participation", self.identities, signer)
            )
            await signer.prompted.wait()
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task

        asyncio.run(_run())


if __name__ == "__main__":
    unittest.main()
