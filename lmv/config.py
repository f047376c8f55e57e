"""lmv runtime configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


# Server settings
HOST = os.getenv("LMV_HOST", "127.0.0.1")
PORT = _env_int("LMV_PORT", 3000)
LOG_LEVEL = os.getenv("LMV_LOG_LEVEL", "INFO").upper()

# Live notifications
KEEPALIVE_SECONDS = max(1, _env_int("LMV_KEEPALIVE_SECONDS", 15))
SUBSCRIBER_QUEUE_SIZE = max(1, _env_int("LMV_SUBSCRIBER_QUEUE_SIZE", 100))

# Filesystem watcher
WATCH_DEBOUNCE_MS = max(1, _env_int("LMV_WATCH_DEBOUNCE_MS", 50))
WATCH_FORCE_POLLING = _env_bool("LMV_WATCH_FORCE_POLLING", False)

# Sharing
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN", "")
GITHUB_API_URL = os.getenv("LMV_GITHUB_API_URL", "https://api.github.com").rstrip("/")
SHARE_TIMEOUT_SECONDS = max(1, _env_int("LMV_SHARE_TIMEOUT_SECONDS", 15))

# Preferences (last opened document per working directory)
STATE_DIR = Path(os.getenv("LMV_STATE_DIR")) if os.getenv("LMV_STATE_DIR") else None

# Telemetry
OTEL_ENABLED = _env_bool("LMV_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("LMV_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("LMV_OTEL_SERVICE_NAME", "lmv")
PROM_PORT = _env_int("LMV_PROM_PORT", 0)
