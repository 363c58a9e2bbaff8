from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Environment variable names
ENV_API_BASE_URL = "FORMATION_API_BASE_URL"
ENV_API_KEY = "FORMATION_API_KEY"
ENV_REQUEST_TIMEOUT = "FORMATION_REQUEST_TIMEOUT"
ENV_MAX_ATTEMPTS = "FORMATION_MAX_ATTEMPTS"
ENV_SESSION_DIR = "FORMATION_SESSION_DIR"
ENV_SESSION_PASSPHRASE = "FORMATION_SESSION_PASSPHRASE"
ENV_LOG_LEVEL = "FORMATION_LOG_LEVEL"
ENV_LOG_FILE = "FORMATION_LOG_FILE"
ENV_REVIEW_TIMEOUT = "FORMATION_REVIEW_TIMEOUT"
ENV_POLL_INTERVAL = "FORMATION_POLL_INTERVAL"

DEFAULT_API_BASE_URL = "http://localhost:3000"


def _default_session_dir() -> Path:
    return Path.home() / ".formation" / "sessions"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _getfloat(name: str, default: float) -> float:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"Invalid configuration: {name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise RuntimeError(f"Invalid configuration: {name} must be > 0")
    return value


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid configuration: {name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise RuntimeError(f"Invalid configuration: {name} must be >= 1")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration, resolved once at startup.

    Only the CLI builds this; the flow controller, coordinator and session
    store receive the individual values as constructor arguments.
    """

    api_base_url: str = DEFAULT_API_BASE_URL
    api_key: Optional[str] = None
    request_timeout: float = 30.0
    max_attempts: int = 3
    session_dir: Path = field(default_factory=_default_session_dir)
    session_passphrase: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    review_wait_timeout: float = 30.0
    poll_interval: float = 2.0

    @classmethod
    def from_env(cls, *, dotenv_path: Optional[Path] = None) -> "Settings":
        # Values already present in the environment win over .env
        load_dotenv(dotenv_path, override=False)
        session_dir = _getenv(ENV_SESSION_DIR)
        log_file = _getenv(ENV_LOG_FILE)
        return cls(
            api_base_url=_getenv(ENV_API_BASE_URL, DEFAULT_API_BASE_URL),  # type: ignore[arg-type]
            api_key=_getenv(ENV_API_KEY),
            request_timeout=_getfloat(ENV_REQUEST_TIMEOUT, 30.0),
            max_attempts=_getint(ENV_MAX_ATTEMPTS, 3),
            session_dir=Path(session_dir).expanduser() if session_dir else _default_session_dir(),
            session_passphrase=_getenv(ENV_SESSION_PASSPHRASE),
            log_level=(_getenv(ENV_LOG_LEVEL, "INFO") or "INFO").upper(),
            log_file=Path(log_file).expanduser() if log_file else None,
            review_wait_timeout=_getfloat(ENV_REVIEW_TIMEOUT, 30.0),
            poll_interval=_getfloat(ENV_POLL_INTERVAL, 2.0),
        )


__all__ = ["Settings"]
