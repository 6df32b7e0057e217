from pathlib import Path

from alembic.config import Config as AlembicConfig
from alembic.script import ScriptDirectory
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.db import engine
from models import AuditEvent, Consent, WalletIdentity

router = APIRouter(tags=["health"])

CONSENT_TABLES = (Consent.__tablename__, AuditEvent.__tablename__, WalletIdentity.__tablename__)
_API_DIR = Path(__file__).resolve().parent.parent


def current_alembic_heads() -> str:
    alembic_cfg = AlembicConfig(str(_API_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(_API_DIR / "alembic"))
    return ",".join(sorted(ScriptDirectory.from_config(alembic_cfg).get_heads()))


def _database_check(bind: Engine) -> str:
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "failed"
    return "ok"


def _consent_tables_check(bind: Engine) -> str:
    try:
        present = set(inspect(bind).get_table_names())
    except SQLAlchemyError:
        return "failed"
    return "ok" if present.issuperset(CONSENT_TABLES) else "failed"


def _migration_head_check(expected_head: str) -> str:
    if not expected_head:
        return "skipped"
    try:
        return "ok" if current_alembic_heads() == expected_head else "failed"
    except Exception:
        return "failed"


def readiness_checks(bind: Engine = engine) -> dict[str, str]:
    """Database reachable, consent schema in place, migrations at the pinned head.

    The signature verification mode is reported for operators and never fails
    readiness; production settings already refuse ``disabled``.
    """
    settings = get_settings()
    checks = {"db": _database_check(bind)}
    checks["consent_tables"] = _consent_tables_check(bind) if checks["db"] == "ok" else "skipped"
    checks["migration_head"] = _migration_head_check(settings.expected_alembic_head)
    checks["signature_verification"] = settings.signature_verification
    return checks


@router.get("/live")
def live():
    return {"status": "ok"}


router.add_api_route("/health", live, methods=["GET"], include_in_schema=False)


@router.get("/ready")
def ready():
    checks = readiness_checks()
    if "failed" in checks.values():
        return JSONResponse(status_code=503, content={"status": "not_ready", "checks": checks})
    return {"status": "ready", "checks": checks}


@router.get("/version")
def version():
    settings = get_settings()
    return {"name": settings.app_name, "version": settings.app_version, "version_hash": settings.version_hash}
