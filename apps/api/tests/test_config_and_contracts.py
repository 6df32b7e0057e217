import os
import unittest
from unittest.mock import patch

from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from core.config import Settings
from core.contracts import API_VERSION_V1, ErrorCode, error_body, paginated, resolve_api_version, success
from core.errors import InvalidTransitionError, NoIdentityError, NotFoundError, SigningError, ValidationError
from core.failure_modes import FailureClass, classify_failure, failure_policy
from core.logging_utils import _safe_value, format_fields
from models.consent import ConsentStatus
from core.observability import COUNTERS, METRIC_UNEXPECTED_EXCEPTION, unexpected_exception_metric

PROD_ENV = {
    "ENV": "prod",
    "DATABASE_URL": "postgresql+psycopg://db/consents",
    "CORS_ALLOWED_ORIGINS": "https://consents.example.org",
    "LOG_LEVEL": "INFO",
}


class SettingsTests(unittest.TestCase):
    def test_prod_requires_database_url(self) -> None:
        env = {k: v for k, v in PROD_ENV.items() if k != "DATABASE_URL"}
        with patch.dict(os.environ, env, clear=True):
            with self.assertRaises(RuntimeError):
                Settings()

    def test_prod_rejects_disabled_signature_verification(self) -> None:
        with patch.dict(os.environ, {**PROD_ENV, "SIGNATURE_VERIFICATION": "disabled"}, clear=True):
            with self.assertRaises(RuntimeError):
                Settings()

    def test_prod_rejects_debug_logging_and_schema_autocreate(self) -> None:
        for extra in ({"LOG_LEVEL": "DEBUG"}, {"AUTO_CREATE_SCHEMA": "true"}):
            with self.subTest(extra=extra), patch.dict(os.environ, {**PROD_ENV, **extra}, clear=True):
                with self.assertRaises(RuntimeError):
                    Settings()

    def test_unknown_verification_mode_is_rejected(self) -> None:
        with patch.dict(os.environ, {"ENV": "test", "DATABASE_URL": "sqlite://", "SIGNATURE_VERIFICATION": "maybe"}, clear=True):
            with self.assertRaises(RuntimeError):
                Settings()

    def test_dev_defaults(self) -> None:
        with patch.dict(os.environ, {"ENV": "dev", "DATABASE_URL": "sqlite://"}, clear=True):
            settings = Settings()
        self.assertEqual(settings.signature_verification, "optional")
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertTrue(settings.is_sqlite)
        self.assertIn("http://localhost:3000", settings.cors_allowed_origins)

    def test_prod_settings_load(self) -> None:
        with patch.dict(os.environ, PROD_ENV, clear=True):
            settings = Settings()
        self.assertEqual(settings.cors_allowed_origins, ["https://consents.example.org"])
        self.assertFalse(settings.is_sqlite)


class ContractTests(unittest.TestCase):
    def test_envelopes(self) -> None:
        self.assertEqual(success({"ok": True}), {"data": {"ok": True}})
        self.assertEqual(
            error_body(ErrorCode.INVALID_TRANSITION, "Consent is already revoked", "req-1"),
            {"error": {"code": "INVALID_TRANSITION", "message": "Consent is already revoked", "request_id": "req-1"}},
        )
        self.assertEqual(
            paginated([], limit=50, offset=0, count=0),
            {"data": [], "meta": {"limit": 50, "offset": 0, "count": 0}},
        )

    def test_api_version_resolution(self) -> None:
        self.assertEqual(resolve_api_version(None), API_VERSION_V1)
        self.assertEqual(resolve_api_version(" V1 "), API_VERSION_V1)
        with self.assertRaises(ValueError):
            resolve_api_version("")
        with self.assertRaises(ValueError):
            resolve_api_version("v2")

    def test_domain_errors_map_to_codes_and_statuses(self) -> None:
        cases = [
            (ValidationError("x"), 422, ErrorCode.VALIDATION_ERROR),
            (NoIdentityError("x"), 401, ErrorCode.NO_IDENTITY),
            (SigningError("x"), 422, ErrorCode.SIGNING_FAILED),
            (NotFoundError("x"), 404, ErrorCode.NOT_FOUND),
            (InvalidTransitionError("x"), 409, ErrorCode.INVALID_TRANSITION),
        ]
        for exc, status, code in cases:
            with self.subTest(exc=exc.__class__.__name__):
                policy = failure_policy(exc)
                self.assertEqual(policy.failure_class, FailureClass.DOMAIN_REJECTED)
                self.assertEqual(policy.http_status, status)
                self.assertEqual(policy.error_code, code)

    def test_infrastructure_failures_are_classified(self) -> None:
        self.assertEqual(classify_failure(IntegrityError("stmt", {}, Exception("dup"))), FailureClass.DB_CONSTRAINT_VIOLATION)
        self.assertEqual(failure_policy(OperationalError("stmt", {}, Exception("down"))).http_status, 503)
        self.assertEqual(failure_policy(RuntimeError("boom")).http_status, 500)

    def test_value_too_long_for_column_is_a_validation_failure(self) -> None:
        policy = failure_policy(DataError("stmt", {}, Exception("value too long for type character varying(256)")))
        self.assertEqual(policy.failure_class, FailureClass.DB_DATA_REJECTED)
        self.assertEqual(policy.http_status, 422)
        self.assertEqual(policy.error_code, ErrorCode.VALIDATION_ERROR)

    def test_unexpected_exception_counters(self) -> None:
        COUNTERS.reset()
        unexpected_exception_metric("RuntimeError")
        self.assertEqual(COUNTERS.value(METRIC_UNEXPECTED_EXCEPTION), 1)
        self.assertEqual(COUNTERS.value(f"{METRIC_UNEXPECTED_EXCEPTION}.RuntimeError"), 1)

    def test_signatures_are_redacted_from_logs(self) -> None:
        self.assertEqual(_safe_value("signature=0xabc"), "[REDACTED]")
        self.assertEqual(_safe_value("patient-001"), "patient-001")

    def test_log_lines_keep_only_allow_listed_fields(self) -> None:
        line = format_fields(
            "consent.activated",
            {
                "consent_id": "c-1",
                "status": ConsentStatus.ACTIVE,
                "purpose": "Research Study Participation",
                "reason": None,
            },
        )
        self.assertEqual(line, "event=consent.activated consent_id=c-1 status=active")


if __name__ == "__main__":
    unittest.main()
