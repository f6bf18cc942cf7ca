import logging
import os
import re
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field

logger = logging.getLogger("vlxd.settings")

DEFAULT_JWT_SECRET = "your-secret-key"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def parse_duration(value: str) -> int:
    """Parse '7d', '12h', '30m', '45s', '2w' or bare seconds into seconds."""
    m = _DURATION_RE.match(value or "")
    if not m:
        raise ValueError(f"Invalid duration: {value!r}")
    seconds = int(m.group(1)) * _DURATION_UNITS[m.group(2)]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


def parse_bool(value: str) -> bool:
    v = (value or "").strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("", "0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean: {value!r}")


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "vlxd_pos"
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expires_in: int = Field(7 * 86400, gt=0, description="Token lifetime in seconds")
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])
    stock_tracking: bool = False
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls, env=None) -> "Settings":
        env = os.environ if env is None else env
        origins = [o.strip() for o in env.get("ALLOWED_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            database_url=env.get("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=env.get("DATABASE_NAME", "vlxd_pos"),
            jwt_secret=env.get("JWT_SECRET", DEFAULT_JWT_SECRET),
            jwt_expires_in=parse_duration(env.get("JWT_EXPIRES_IN", "7d")),
            allowed_origins=origins or ["*"],
            stock_tracking=parse_bool(env.get("STOCK_TRACKING", "false")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            port=int(env.get("PORT", 8000)),
        )


@lru_cache
def get_settings() -> Settings:
    settings = Settings.from_env()
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET not set, using the built-in development secret")
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
