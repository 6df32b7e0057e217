from enum import StrEnum
from typing import Any


API_VERSION_HEADER = "X-API-Version"
API_VERSION_V1 = "v1"
DEFAULT_API_VERSION = API_VERSION_V1
SUPPORTED_API_VERSIONS = frozenset({API_VERSION_V1})


class ErrorCode(StrEnum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NO_IDENTITY = "NO_IDENTITY"
    SIGNING_FAILED = "SIGNING_FAILED"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CONFLICT = "CONFLICT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def resolve_api_version(version_header: str | None) -> str:
    if version_header is None:
        return DEFAULT_API_VERSION
    normalized = version_header.strip().lower()
    if not normalized:
        raise ValueError("API version header is empty")
    if normalized not in SUPPORTED_API_VERSIONS:
        raise ValueError(f"Unsupported API version: {normalized}")
    return normalized


def success(data: Any) -> dict[str, Any]:
    return {"data": data}


def paginated(data: list[Any], *, limit: int, offset: int, count: int) -> dict[str, Any]:
    return {
        "data": data,
        "meta": {
            "limit": limit,
            "offset": offset,
            "count": count,
        },
    }


def error_body(code: ErrorCode, message: str, request_id: str) -> dict[str, Any]:
    return {
        "error": {
            "code": str(code),
            "message": message,
            "request_id": request_id,
        }
    }
