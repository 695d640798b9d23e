import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

# Load environment variables from .env file, if it exists
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "t", "yes")


def _database_url() -> str:
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    # Same DB_* variables as the Cloud SQL deployment
    db_host = os.getenv("DB_HOST")
    instance_connection_name = os.getenv("INSTANCE_CONNECTION_NAME")
    db_name = os.getenv("DB_NAME")
    db_user = os.getenv("DB_USER")
    db_password = os.getenv("DB_PASSWORD")
    db_port = os.getenv("DB_PORT", "5432")

    if instance_connection_name:
        missing_vars = [
            var for var in ["DB_NAME", "DB_USER", "DB_PASSWORD"] if not os.getenv(var)
        ]
        if missing_vars:
            raise ValueError(
                f"Missing required environment variables for Cloud SQL (socket): {', '.join(missing_vars)}"
            )
        return f"postgresql+psycopg2://{db_user}:{db_password}@/{db_name}?host=/cloudsql/{instance_connection_name}"

    if db_host:
        missing_vars = [
            var for var in ["DB_NAME", "DB_USER", "DB_PASSWORD"] if not os.getenv(var)
        ]
        if missing_vars:
            raise ValueError(
                f"Missing required environment variables for TCP: {', '.join(missing_vars)}"
            )
        return f"postgresql+psycopg2://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"

    # Single-device deployments keep everything in a local file
    return "sqlite:///./securepatrol.db"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./securepatrol.db"
    # Google Apps Script web app acting as the authoritative log; empty disables sync
    sheet_script_url: str = ""
    patrol_timezone: str = "Asia/Bangkok"
    location_timeout_seconds: float = 10.0
    # Readings less accurate than this are treated as indoor / unreliable
    degraded_accuracy_meters: float = 100.0
    sync_settle_seconds: float = 2.0
    remote_timeout_seconds: float = 15.0
    enforce_interval_schedules: bool = False
    draft_ttl_seconds: float = 900.0
    tracker_api_url: str = ""
    tracker_api_key: str = ""
    allowed_origins: List[str] = field(default_factory=list)
    admin_roles: List[str] = field(default_factory=lambda: ["owner", "ADMIN"])

    @property
    def sync_enabled(self) -> bool:
        return bool(self.sheet_script_url)


def load_settings() -> Settings:
    dev_domain = os.getenv("DEV_DOMAIN", "http://localhost:5173")
    production_domain = os.getenv("PRODUCTION_DOMAIN", "")
    allowed_origins = [
        dev_domain,
        production_domain,
        "http://localhost:3000",  # Additional fallback for React dev
        "http://127.0.0.1:5173",  # Additional fallback for Vite dev
    ]
    # Remove any empty values and duplicates
    allowed_origins = sorted(set(origin for origin in allowed_origins if origin))

    admin_roles = [
        role.strip()
        for role in os.getenv("ADMIN_ROLES", "owner,ADMIN").split(",")
        if role.strip()
    ]

    return Settings(
        database_url=_database_url(),
        sheet_script_url=os.getenv("SHEET_SCRIPT_URL", ""),
        patrol_timezone=os.getenv("PATROL_TIMEZONE", "Asia/Bangkok"),
        location_timeout_seconds=float(os.getenv("LOCATION_TIMEOUT_SECONDS", "10")),
        degraded_accuracy_meters=float(os.getenv("DEGRADED_ACCURACY_METERS", "100")),
        sync_settle_seconds=float(os.getenv("SYNC_SETTLE_SECONDS", "2")),
        remote_timeout_seconds=float(os.getenv("REMOTE_TIMEOUT_SECONDS", "15")),
        enforce_interval_schedules=_env_bool("ENFORCE_INTERVAL_SCHEDULES", "false"),
        draft_ttl_seconds=float(os.getenv("DRAFT_TTL_SECONDS", "900")),
        tracker_api_url=os.getenv("TRACKER_API_URL", ""),
        tracker_api_key=os.getenv("TRACKER_API_KEY", ""),
        allowed_origins=allowed_origins,
        admin_roles=admin_roles,
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
