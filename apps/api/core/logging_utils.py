"""Structured ``key=value`` log lines for the consent API.

Only identifiers and outcomes are logged. Statement text, signatures and key
material never reach a log line: unknown fields are dropped and values that
look like secrets are redacted.
"""

import enum
import logging
import time
import uuid
from typing import Any

from fastapi import Request

from core.config import get_settings


logger = logging.getLogger("consent_ledger.api")

ALLOWED_LOG_FIELDS = frozenset(
    {
        # request
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        # telemetry
        "event_type",
        "metric",
        "value",
        "reason",
        "error_class",
        "failure_class",
        "subscriber",
        # consent records
        "consent_id",
        "status",
        "target_status",
        "wallet_address",
        "mode",
    }
)
REDACTED = "[REDACTED]"
_SECRET_MARKERS = ("secret", "private_key", "authorization", "bearer ", "signature", "password")
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level_name: str | None = None) -> None:
    level_name = (level_name or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=_LOG_FORMAT)


def _safe_value(value: Any) -> str:
    text = str(value.value) if isinstance(value, enum.Enum) else str(value)
    if any(marker in text.lower() for marker in _SECRET_MARKERS):
        return REDACTED
    return text


def format_fields(event: str, fields: dict[str, Any]) -> str:
    pairs = [
        f"{key}={_safe_value(value)}"
        for key, value in fields.items()
        if key in ALLOWED_LOG_FIELDS and value is not None
    ]
    return " ".join([f"event={event}", *pairs])


def log_structured(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    if logger.isEnabledFor(level):
        logger.log(level, format_fields(event, fields))


def request_id_from_request(request: Request) -> str:
    incoming = (request.headers.get("X-Request-Id") or "").strip()
    return incoming or str(uuid.uuid4())


def log_request(request_id: str, method: str, path: str, status_code: int, elapsed_ms: float) -> None:
    # Request line only; consent bodies carry signatures.
    log_structured(
        "request.completed",
        request_id=request_id,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=f"{elapsed_ms:.2f}",
    )


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0
