"""Process-level configuration for cckb."""

import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_env_float(key: str, default: float) -> float:
    """Get environment variable as float."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


# Knowledge base folder created inside each project
KB_DIRNAME = get_env("CCKB_KB_DIRNAME", "cc-knowledge-base") or "cc-knowledge-base"

# Analyzer settings (seconds)
ANALYZER_TIMEOUT = get_env_float("CCKB_ANALYZER_TIMEOUT", 600.0)
COMPACTION_TIMEOUT = get_env_float("CCKB_COMPACTION_TIMEOUT", 300.0)
HEARTBEAT_INTERVAL = get_env_float("CCKB_HEARTBEAT_INTERVAL", 15.0)
ANALYZER_MODEL = get_env("CCKB_MODEL")

# Delay between discovery batches, keeps us under CLI rate limits
BATCH_PACING = get_env_float("CCKB_BATCH_PACING", 1.5)

# Logging
LOG_LEVEL = get_env("LOG_LEVEL", "WARNING") or "WARNING"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure and return logger.

    Logs go to stderr; stdout belongs to the hook protocol.
    """
    level = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, level, logging.WARNING),
    )
    return logging.getLogger("cckb")
