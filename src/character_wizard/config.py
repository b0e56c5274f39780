from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8080/api/v1"
DEFAULT_TIMEOUT_MS = 15000
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(slots=True)
class Settings:
    api_base_url: str = DEFAULT_API_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            api_base_url=(env.get("CHARACTER_WIZARD_API_URL") or DEFAULT_API_URL).rstrip("/"),
            timeout_ms=_int_setting(env, "CHARACTER_WIZARD_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            log_level=(env.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or Settings.from_env()
    if not logging.getLogger().handlers:
        logging.basicConfig(level=settings.log_level)


def _int_setting(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", key, raw, default)
        return default
