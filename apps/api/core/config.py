from functools import lru_cache
import logging
import os


logger = logging.getLogger(__name__)

SIGNATURE_VERIFICATION_MODES = {"required", "optional", "disabled"}


class Settings:
    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", "consent-ledger-api")
        self.app_version = os.getenv("APP_VERSION", "0.1.0")
        self.version_hash = os.getenv("VERSION_HASH", os.getenv("GIT_SHA", "unknown"))
        self.env = os.getenv("ENV", "dev").lower()
        if self.env not in {"dev", "test", "staging", "prod"}:
            raise RuntimeError("ENV must be one of: dev, test, staging, prod")
        self.expected_alembic_head = os.getenv("EXPECTED_ALEMBIC_HEAD", "").strip()
        self.log_level = os.getenv("LOG_LEVEL", "DEBUG" if self.env in {"dev", "test"} else "INFO").upper().strip()

        self.database_url = os.getenv("DATABASE_URL")
        if not self.database_url:
            if self.env == "prod":
                raise RuntimeError("DATABASE_URL is required in prod")
            self.database_url = "postgresql+psycopg://postgres@localhost:5433/consent_ledger"
            logger.warning("DATABASE_URL not set, using local dev default")

        self.signature_verification = os.getenv("SIGNATURE_VERIFICATION", "optional").strip().lower()
        if self.signature_verification not in SIGNATURE_VERIFICATION_MODES:
            raise RuntimeError("SIGNATURE_VERIFICATION must be one of: required, optional, disabled")

        self.db_pool_size = int(os.getenv("DB_POOL_SIZE", "5"))
        self.db_max_overflow = int(os.getenv("DB_MAX_OVERFLOW", "10"))
        self.db_pool_timeout = int(os.getenv("DB_POOL_TIMEOUT", "30"))
        self.db_pool_recycle = int(os.getenv("DB_POOL_RECYCLE", "1800"))

        self.auto_create_schema = os.getenv("AUTO_CREATE_SCHEMA", "false").lower() == "true"
        self.cors_allowed_origins = self._parse_cors_origins()
        self.validate()

    def _parse_cors_origins(self) -> list[str]:
        raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
        if raw.strip():
            return [origin.strip() for origin in raw.split(",") if origin.strip()]
        if self.env == "dev":
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        return []

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def validate(self) -> None:
        if self.env == "prod":
            if not self.cors_allowed_origins:
                raise RuntimeError("CORS_ALLOWED_ORIGINS must be explicitly set in prod")
            if self.auto_create_schema:
                raise RuntimeError("AUTO_CREATE_SCHEMA must be false in prod")
            if self.log_level == "DEBUG":
                raise RuntimeError("LOG_LEVEL=DEBUG is not allowed in prod")
            if self.signature_verification == "disabled":
                raise RuntimeError("SIGNATURE_VERIFICATION=disabled is not allowed in prod")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def reset_settings_cache() -> None:
    get_settings.cache_clear()
