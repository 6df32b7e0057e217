import json
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from core.config import get_settings
from core.contracts import API_VERSION_HEADER, ErrorCode, error_body, resolve_api_version
from core.db import Base, SessionLocal, engine
from core.errors import ConsentError
from core.failure_modes import failure_policy, record_operation_failure
from core.logging_utils import configure_logging, log_request, log_structured, monotonic_ms, request_id_from_request
import models  # noqa: F401  ensure models are imported so tables are registered
from routers.consents import router as consents_router
from routers.health import current_alembic_heads, router as health_router
from routers.identities import router as identities_router

settings = get_settings()
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Consent Ledger API",
    description=(
        "Patient consent lifecycle. Consents are created `pending` from a wallet-signed statement "
        "and move once to `active` (optionally anchored by a ledger transaction hash) or `revoked`."
    ),
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=[
        {"name": "consents", "description": "Signed consent creation, status transitions and queries."},
        {"name": "identities", "description": "Wallet public keys used for signature verification."},
        {"name": "health", "description": "Operational liveness and diagnostics."},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-Id", API_VERSION_HEADER],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    try:
        api_version = resolve_api_version(request.headers.get(API_VERSION_HEADER))
    except ValueError as exc:
        return JSONResponse(
            status_code=400,
            content=error_body(
                ErrorCode.VALIDATION_ERROR,
                str(exc),
                request_id_from_request(request),
            ),
        )

    request_id = request_id_from_request(request)
    request.state.request_id = request_id
    request.state.api_version = api_version
    started = monotonic_ms()
    response = await call_next(request)
    if (
        response.status_code < 400
        and response.headers.get("content-type", "").startswith("application/json")
    ):
        body = b""
        async for chunk in response.body_iterator:
            body += chunk
        try:
            decoded = json.loads(body.decode("utf-8")) if body else None
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, dict) and ("data" in decoded or "error" in decoded):
            wrapped = decoded
        else:
            wrapped = {"data": decoded}
        response = JSONResponse(content=wrapped, status_code=response.status_code)
    response.headers["X-Request-Id"] = request_id
    response.headers[API_VERSION_HEADER] = api_version
    elapsed = monotonic_ms() - started
    log_request(request_id, request.method, request.url.path, response.status_code, elapsed)
    return response


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _map_http_error_code(status_code: int) -> ErrorCode:
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    if status_code == 409:
        return ErrorCode.CONFLICT
    if status_code == 422:
        return ErrorCode.VALIDATION_ERROR
    return ErrorCode.INTERNAL_ERROR


@app.exception_handler(ConsentError)
async def consent_error_handler(request: Request, exc: ConsentError):
    return JSONResponse(
        status_code=exc.http_status,
        content=error_body(exc.code, exc.message, _request_id(request)),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    message = "Request could not be processed"
    if exc.status_code in {404, 405, 409, 422}:
        message = str(exc.detail) if isinstance(exc.detail, str) else message
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(_map_http_error_code(exc.status_code), message, _request_id(request)),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    log_structured(
        "http.validation_error",
        request_id=_request_id(request),
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=422,
        content=error_body(
            ErrorCode.VALIDATION_ERROR,
            "Request validation failed",
            _request_id(request),
        ),
    )


_UNHANDLED_MESSAGES = {
    409: "Request conflicts with stored state",
    422: "Request value does not fit the stored record",
}


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    policy = failure_policy(exc)
    record_operation_failure(
        operation="http.request",
        exc=exc,
        extra_payload={"request_id": _request_id(request)},
    )
    return JSONResponse(
        status_code=policy.http_status,
        content=error_body(
            policy.error_code,
            _UNHANDLED_MESSAGES.get(policy.http_status, "Internal server error"),
            _request_id(request),
        ),
    )


app.include_router(health_router)


@app.get("/")
def root():
    return {"status": "Consent Ledger API running"}


app.include_router(consents_router)
app.include_router(identities_router)


@app.on_event("startup")
async def on_startup() -> None:
    migration_heads = current_alembic_heads()
    logger.info(
        "startup env=%s version_hash=%s migration_head=%s signature_verification=%s",
        settings.env,
        settings.version_hash,
        migration_heads,
        settings.signature_verification,
    )

    if settings.env == "prod" and not settings.expected_alembic_head:
        logger.warning("EXPECTED_ALEMBIC_HEAD is not set; skipping migration-head enforcement")
    if settings.expected_alembic_head and settings.expected_alembic_head != migration_heads:
        raise RuntimeError(
            f"migration head mismatch: expected {settings.expected_alembic_head}, found {migration_heads}"
        )

    if settings.env in {"dev", "test"} and settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)

    connectivity_session = SessionLocal()
    try:
        connectivity_session.execute(text("SELECT 1"))
    except Exception as exc:
        raise RuntimeError("database connectivity check failed") from exc
    finally:
        connectivity_session.close()

    if settings.signature_verification == "disabled":
        logger.warning("signature_verification_disabled_explicit")
