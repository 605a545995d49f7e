"""
Runtime configuration for titanscan.

All settings come from environment variables so the same image can run in
development and production without code changes.
"""
import os
from typing import List, Optional

from pydantic import BaseModel


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_int(name: str, default: int) -> Optional[int]:
    """0 or a negative value disables the limit."""
    value = int(os.getenv(name, str(default)))
    return value if value > 0 else None


class Settings(BaseModel):
    environment: str = "development"
    allowed_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Remote scanner (ZAP)
    zap_api: str = "http://localhost:8080"
    zap_api_key: Optional[str] = None
    zap_request_timeout: float = 30.0

    # Local command execution
    command_timeout: float = 600.0
    max_output_bytes: int = 10 * 1024 * 1024
    use_sudo: bool = True
    feroxbuster_wordlist: str = "/usr/share/wordlists/dirb/common.txt"

    # Scan Store
    database_url: str = "sqlite+aiosqlite:///./titanscan.db"

    # Progress Store
    progress_backend: str = "memory"  # memory, redis
    redis_url: str = "redis://localhost:6379/0"
    progress_ttl_seconds: Optional[int] = 86400
    progress_max_entries: Optional[int] = 1000

    # Rate limiting
    scan_rate_limit: str = "100 per 15 minutes"
    rate_limit_storage_uri: str = "memory://"

    # Aggregate mode (1 = strictly sequential)
    aggregate_concurrency: int = 1

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173")
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            allowed_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
            zap_api=os.getenv("ZAP_API", "http://localhost:8080").rstrip("/"),
            zap_api_key=os.getenv("ZAP_API_KEY") or None,
            zap_request_timeout=float(os.getenv("ZAP_REQUEST_TIMEOUT", "30")),
            command_timeout=float(os.getenv("COMMAND_TIMEOUT", "600")),
            max_output_bytes=int(os.getenv("MAX_OUTPUT_BYTES", str(10 * 1024 * 1024))),
            use_sudo=_env_bool("USE_SUDO", True),
            feroxbuster_wordlist=os.getenv(
                "FEROXBUSTER_WORDLIST", "/usr/share/wordlists/dirb/common.txt"
            ),
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./titanscan.db"),
            progress_backend=os.getenv("PROGRESS_BACKEND", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            progress_ttl_seconds=_env_optional_int("PROGRESS_TTL_SECONDS", 86400),
            progress_max_entries=_env_optional_int("PROGRESS_MAX_ENTRIES", 1000),
            scan_rate_limit=os.getenv("SCAN_RATE_LIMIT", "100 per 15 minutes"),
            rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
            aggregate_concurrency=max(1, int(os.getenv("AGGREGATE_CONCURRENCY", "1"))),
        )
