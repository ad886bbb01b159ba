import json
import os
import threading
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()

DENIAL_COUNTER_BACKENDS = frozenset({"memory", "redis"})


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean value")


class Settings(BaseModel):
    app_name: str = Field(default="Casegate Authorization Service")
    debug: bool = Field(default=False)
    database_url: str = Field(default="")
    redis_url: str = Field(default="redis://localhost:6379/0")
    allowed_origins: list[str] = Field(default_factory=list)
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_recycle: int = Field(default=1800)
    db_pool_pre_ping: bool = Field(default=True)
    secret_key: str | None = Field(default=None)
    algorithm: str = Field(default="HS256")

    denial_threshold: int = Field(default=3)
    denial_window_seconds: int = Field(default=300)
    denial_counter_backend: str = Field(default="memory")
    scope_lookup_timeout_seconds: float = Field(default=2.0)
    program_scope_allows_unenrolled_clients: bool = Field(default=False)
    default_admin_contact: str = Field(default="your organization administrator")

    @classmethod
    def from_env(cls) -> "Settings":
        secret_key = os.getenv("SECRET_KEY", "").strip()
        if not secret_key:
            raise ValueError("SECRET_KEY environment variable must be set")

        raw_allowed_origins = os.getenv("ALLOWED_ORIGINS", "").strip()
        if not raw_allowed_origins:
            raise ValueError("ALLOWED_ORIGINS environment variable must be set")

        # Support both CSV format and JSON array format
        allowed_origins: list[str] = []
        if raw_allowed_origins.startswith("["):
            try:
                parsed_list = json.loads(raw_allowed_origins)
                if not isinstance(parsed_list, list):
                    raise ValueError("ALLOWED_ORIGINS JSON must be an array")
                allowed_origins = [
                    origin.strip() for origin in parsed_list if isinstance(origin, str) and origin.strip()
                ]
            except json.JSONDecodeError as exc:
                raise ValueError(f"ALLOWED_ORIGINS JSON is malformed: {exc}") from exc
        else:
            allowed_origins = [
                origin.strip() for origin in raw_allowed_origins.split(",") if origin.strip()
            ]

        if not allowed_origins:
            raise ValueError("ALLOWED_ORIGINS must contain at least one origin")

        if "*" in allowed_origins:
            raise ValueError(
                "ALLOWED_ORIGINS cannot contain '*' when credentialed requests are used"
            )

        for origin in allowed_origins:
            parsed = urlparse(origin)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(
                    "ALLOWED_ORIGINS must contain valid http/https origins with host"
                )

        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL environment variable must be set")

        parsed_db = urlparse(database_url)
        if parsed_db.scheme != "postgresql+asyncpg":
            raise ValueError("DATABASE_URL must start with 'postgresql+asyncpg://'")
        if not parsed_db.hostname:
            raise ValueError("DATABASE_URL must include hostname")

        db_pool_size = int(os.getenv("DB_POOL_SIZE", cls.model_fields["db_pool_size"].default))
        if db_pool_size <= 0:
            raise ValueError("DB_POOL_SIZE must be greater than 0")

        db_max_overflow = int(
            os.getenv("DB_MAX_OVERFLOW", cls.model_fields["db_max_overflow"].default)
        )
        if db_max_overflow < 0:
            raise ValueError("DB_MAX_OVERFLOW must be greater than or equal to 0")

        db_pool_recycle = int(
            os.getenv("DB_POOL_RECYCLE", cls.model_fields["db_pool_recycle"].default)
        )
        if db_pool_recycle <= 0:
            raise ValueError("DB_POOL_RECYCLE must be greater than 0")

        db_pool_pre_ping = _parse_bool(
            "DB_POOL_PRE_PING",
            os.getenv("DB_POOL_PRE_PING", str(cls.model_fields["db_pool_pre_ping"].default)),
        )

        denial_threshold = int(
            os.getenv("DENIAL_THRESHOLD", cls.model_fields["denial_threshold"].default)
        )
        if denial_threshold < 1:
            raise ValueError("DENIAL_THRESHOLD must be at least 1")

        denial_window_seconds = int(
            os.getenv("DENIAL_WINDOW_SECONDS", cls.model_fields["denial_window_seconds"].default)
        )
        if denial_window_seconds <= 0:
            raise ValueError("DENIAL_WINDOW_SECONDS must be greater than 0")

        denial_counter_backend = os.getenv(
            "DENIAL_COUNTER_BACKEND", cls.model_fields["denial_counter_backend"].default
        ).strip().lower()
        if denial_counter_backend not in DENIAL_COUNTER_BACKENDS:
            raise ValueError(
                "DENIAL_COUNTER_BACKEND must be one of: "
                f"{', '.join(sorted(DENIAL_COUNTER_BACKENDS))}"
            )

        scope_lookup_timeout_seconds = float(
            os.getenv(
                "SCOPE_LOOKUP_TIMEOUT_SECONDS",
                cls.model_fields["scope_lookup_timeout_seconds"].default,
            )
        )
        if scope_lookup_timeout_seconds <= 0:
            raise ValueError("SCOPE_LOOKUP_TIMEOUT_SECONDS must be greater than 0")

        program_scope_allows_unenrolled_clients = _parse_bool(
            "PROGRAM_SCOPE_ALLOWS_UNENROLLED_CLIENTS",
            os.getenv("PROGRAM_SCOPE_ALLOWS_UNENROLLED_CLIENTS", "false"),
        )

        default_admin_contact = os.getenv(
            "DEFAULT_ADMIN_CONTACT", cls.model_fields["default_admin_contact"].default
        ).strip() or cls.model_fields["default_admin_contact"].default

        redis_url = os.getenv("REDIS_URL", cls.model_fields["redis_url"].default).strip()

        return cls(
            app_name=os.getenv("APP_NAME", cls.model_fields["app_name"].default),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            database_url=database_url,
            redis_url=redis_url,
            allowed_origins=allowed_origins,
            secret_key=secret_key,
            algorithm=os.getenv("ALGORITHM", cls.model_fields["algorithm"].default),
            db_pool_size=db_pool_size,
            db_max_overflow=db_max_overflow,
            db_pool_recycle=db_pool_recycle,
            db_pool_pre_ping=db_pool_pre_ping,
            denial_threshold=denial_threshold,
            denial_window_seconds=denial_window_seconds,
            denial_counter_backend=denial_counter_backend,
            scope_lookup_timeout_seconds=scope_lookup_timeout_seconds,
            program_scope_allows_unenrolled_clients=program_scope_allows_unenrolled_clients,
            default_admin_contact=default_admin_contact,
        )


# Settings are validated on first access (application startup), not at import.
_settings_instance: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get settings instance, creating it on first access.

    Uses double-checked locking so concurrent first access from several
    threads or tasks builds exactly one instance.

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    global _settings_instance

    if _settings_instance is not None:
        return _settings_instance

    with _settings_lock:
        if _settings_instance is None:
            _settings_instance = Settings.from_env()

    return _settings_instance


class _SettingsProxy:
    """Proxy to defer settings creation until first attribute access."""

    def __getattr__(self, name: str):
        return getattr(get_settings(), name)


settings = _SettingsProxy()  # type: ignore[assignment]
