import os


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return max(minimum, int(v.strip()))
    except ValueError:
        return default


class Config:
    """Base configuration loaded from environment variables."""

    # Staging store (recreated on every open; never durable)
    EAV_STORE_PATH: str = os.getenv("EAV_STORE_PATH", "db.sqlite")

    # Export tuning
    EXPORT_CHUNK_SIZE: int = _env_int("EXPORT_CHUNK_SIZE", 100)
    EXPORT_MAX_WORKERS: int = _env_int("EXPORT_MAX_WORKERS", 4)
    EXPORT_TABLE_NAME: str = os.getenv("EXPORT_TABLE_NAME", "products")
