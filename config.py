"""
config.py
Settings for the membership desk, read from the environment (and a local .env).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from errors import ValidationError

BACKENDS = ("local", "sqlite", "rest")


@dataclass(frozen=True)
class Settings:
    backend: str
    data_dir: Path
    db_file: Path
    store_file: Path
    api_base_url: str
    api_timeout: float
    session_hours: int
    page_size: int
    log_level: str


def _env(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def _positive_number(name: str, raw: str, cast):
    try:
        value = cast(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {raw!r}.") from None
    if value <= 0:
        raise ValidationError(f"{name} must be greater than zero.")
    return value


def load_settings() -> Settings:
    load_dotenv()

    backend = _env("MEMBERSHIP_BACKEND", "local").lower()
    if backend not in BACKENDS:
        raise ValidationError(f"MEMBERSHIP_BACKEND must be one of {', '.join(BACKENDS)}.")

    data_dir = Path(_env("MEMBERSHIP_DATA_DIR", str(Path(__file__).parent)))

    return Settings(
        backend=backend,
        data_dir=data_dir,
        db_file=Path(_env("MEMBERSHIP_DB_FILE", str(data_dir / "membership.db"))),
        store_file=Path(_env("MEMBERSHIP_STORE_FILE", str(data_dir / "customers.json"))),
        api_base_url=_env("MEMBERSHIP_API_BASE_URL", "http://localhost:3001/api").rstrip("/"),
        api_timeout=_positive_number("MEMBERSHIP_API_TIMEOUT", _env("MEMBERSHIP_API_TIMEOUT", "10"), float),
        session_hours=_positive_number("MEMBERSHIP_SESSION_HOURS", _env("MEMBERSHIP_SESSION_HOURS", "24"), int),
        page_size=_positive_number("MEMBERSHIP_PAGE_SIZE", _env("MEMBERSHIP_PAGE_SIZE", "10"), int),
        log_level=_env("MEMBERSHIP_LOG_LEVEL", "INFO").upper(),
    )
