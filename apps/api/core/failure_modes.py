from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError

from core.contracts import ErrorCode
from core.errors import ConsentError
from core.logging_utils import log_structured
from core.observability import unexpected_exception_metric


class FailureClass(StrEnum):
    DOMAIN_REJECTED = "domain.rejected"
    DB_UNAVAILABLE = "db.unavailable"
    DB_CONSTRAINT_VIOLATION = "db.constraint_violation"
    DB_DATA_REJECTED = "db.data_rejected"
    UNEXPECTED_EXCEPTION = "unexpected.exception"


@dataclass(frozen=True)
class FailurePolicy:
    failure_class: FailureClass
    http_status: int
    error_code: ErrorCode


def classify_failure(exc: Exception) -> FailureClass:
    if isinstance(exc, ConsentError):
        return FailureClass.DOMAIN_REJECTED
    if isinstance(exc, IntegrityError):
        return FailureClass.DB_CONSTRAINT_VIOLATION
    # Value too long or malformed for its column: the input is at fault.
    if isinstance(exc, DataError):
        return FailureClass.DB_DATA_REJECTED
    if isinstance(exc, (OperationalError, DBAPIError)):
        return FailureClass.DB_UNAVAILABLE
    return FailureClass.UNEXPECTED_EXCEPTION


def failure_policy(exc: Exception) -> FailurePolicy:
    failure_class = classify_failure(exc)
    if isinstance(exc, ConsentError):
        return FailurePolicy(failure_class=failure_class, http_status=exc.http_status, error_code=exc.code)
    if failure_class == FailureClass.DB_UNAVAILABLE:
        return FailurePolicy(failure_class=failure_class, http_status=503, error_code=ErrorCode.SERVICE_UNAVAILABLE)
    if failure_class == FailureClass.DB_CONSTRAINT_VIOLATION:
        return FailurePolicy(failure_class=failure_class, http_status=409, error_code=ErrorCode.CONFLICT)
    if failure_class == FailureClass.DB_DATA_REJECTED:
        return FailurePolicy(failure_class=failure_class, http_status=422, error_code=ErrorCode.VALIDATION_ERROR)
    return FailurePolicy(failure_class=failure_class, http_status=500, error_code=ErrorCode.INTERNAL_ERROR)


def record_operation_failure(
    *,
    operation: str,
    exc: Exception,
    resource_id: str | None = None,
    extra_payload: dict[str, Any] | None = None,
) -> None:
    """Failure telemetry emitted after the rollback boundary."""
    failure_class = classify_failure(exc)
    request_id = (extra_payload or {}).get("request_id")
    if failure_class == FailureClass.UNEXPECTED_EXCEPTION:
        unexpected_exception_metric(exc.__class__.__name__, request_id=request_id)
    log_structured(
        f"{operation}.failed",
        level=logging.INFO if failure_class == FailureClass.DOMAIN_REJECTED else logging.WARNING,
        failure_class=failure_class.value,
        error_class=exc.__class__.__name__,
        consent_id=resource_id,
        request_id=request_id,
    )
