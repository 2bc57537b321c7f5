import os
from dataclasses import dataclass

BACKENDS = ("sqlite", "rest")


@dataclass(frozen=True)
class StoreConfig:
    backend: str
    sqlite_path: str
    rest_url: str
    rest_key: str
    timeout: float
    max_attempts: int
    admin_password: str
    log_level: str


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be at least 1")
    return value


def get_store_config() -> StoreConfig:
    backend = os.getenv("WISHKEEPER_BACKEND", "sqlite").strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"WISHKEEPER_BACKEND must be one of {', '.join(BACKENDS)}")

    return StoreConfig(
        backend=backend,
        sqlite_path=os.getenv("WISHKEEPER_SQLITE_PATH", ".wishkeeper/wishkeeper.db"),
        rest_url=os.getenv("WISHKEEPER_REST_URL", "").rstrip("/"),
        rest_key=os.getenv("WISHKEEPER_REST_KEY", ""),
        timeout=_float_env("WISHKEEPER_TIMEOUT", "10.0"),
        max_attempts=_int_env("WISHKEEPER_MAX_ATTEMPTS", "1"),
        admin_password=os.getenv("WISHKEEPER_ADMIN_PASSWORD", ""),
        log_level=os.getenv("WISHKEEPER_LOG_LEVEL", "INFO").upper(),
    )
