import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

VERSION = "v0.1.0"

# Probe request bounds
MIN_TIMEOUT_MS = 100
MAX_TIMEOUT_MS = 5000
MIN_PACKET_SIZE = 32
MAX_PACKET_SIZE = 65507
MIN_DURATION_MS = 1000
MAX_DURATION_MS = 3600000

DEFAULT_TIMEOUT_MS = 1000
DEFAULT_PACKET_SIZE = 32
DEFAULT_DURATION_MS = 60000

TICK_INTERVAL_S = 1.0  # seconds between probes of one session
PROBE_GRACE_S = 1.0  # extra wait past the ping timeout before killing it
HISTORY_LIMIT = 1000

DEFAULT_ALLOWED_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"  # Development server defaults

REQUIRED_ENV_VARS = (
    "PORT",
    "DATABASE_PATH",
)


class Settings(BaseModel):
    """Typed runtime configuration."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    PORT: int
    DATABASE_PATH: str
    HOST: str = "0.0.0.0"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None
    ALLOWED_ORIGINS: List[str] = []
    STATIC_DIR: Optional[str] = None

    @field_validator("PORT")
    @classmethod
    def _port_in_range(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("must be between 1 and 65535")
        return value

    @field_validator("DATABASE_PATH")
    @classmethod
    def _path_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def load_settings(load_env: bool = True) -> Settings:
    """Build settings from the environment, raising RuntimeError when unusable."""

    if load_env:
        load_dotenv()

    missing = [name for name in REQUIRED_ENV_VARS if not os.environ.get(name)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    values = {
        "PORT": os.environ["PORT"],
        "DATABASE_PATH": os.environ["DATABASE_PATH"],
        "HOST": os.environ.get("HOST", "0.0.0.0"),
        "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO"),
        "LOG_DIR": os.environ.get("LOG_DIR") or None,
        "ALLOWED_ORIGINS": _split_origins(os.environ.get("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)),
        "STATIC_DIR": os.environ.get("STATIC_DIR") or None,
    }
    try:
        return Settings(**values)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
