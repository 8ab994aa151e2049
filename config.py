"""
Configuration for the document assistant client.

Loads environment variables (and an optional .env file) into a frozen
configuration object.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import structlog
from dotenv import load_dotenv

load_dotenv()

logger = structlog.get_logger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


@dataclass(frozen=True)
class Config:
    # Services
    backend_url: str = "https://iomp-backbro.onrender.com"
    call_service_url: str = "https://twilio-backend-8evv.onrender.com"
    request_timeout_seconds: float = 60.0

    # Speech
    language_code: str = "en-IN"
    tts_speaker: str = "anushka"
    synthesize_answers: bool = True
    sample_rate: int = 16000

    # Outbound calls
    cooldown_seconds: int = 300
    status_reset_seconds: float = 3.0

    # Local state
    state_path: str = ""
    log_level: str = "INFO"

    @property
    def resolved_state_path(self) -> Path:
        if self.state_path:
            return Path(self.state_path).expanduser()
        return Path.home() / ".config" / "docvoice" / "state.json"

    def validate(self) -> None:
        """Validate that all required configuration is present."""
        missing = []
        if not self.backend_url:
            missing.append("BACKEND_URL")
        if not self.call_service_url:
            missing.append("CALL_SERVICE_URL")
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        if self.cooldown_seconds < 0:
            raise ConfigError("COOLDOWN_SECONDS must not be negative")
        if self.request_timeout_seconds <= 0:
            raise ConfigError("REQUEST_TIMEOUT_SECONDS must be positive")

    def log_config(self) -> None:
        logger.info(
            "Configuration loaded",
            backend_url=self.backend_url,
            call_service_url=self.call_service_url,
            language_code=self.language_code,
            tts_speaker=self.tts_speaker,
            synthesize_answers=self.synthesize_answers,
            cooldown_seconds=self.cooldown_seconds,
            state_path=str(self.resolved_state_path),
            log_level=self.log_level,
        )


def _get_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def _get_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _get_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Build the configuration once per process."""
    return Config(
        backend_url=os.getenv("BACKEND_URL", Config.backend_url).rstrip("/"),
        call_service_url=os.getenv("CALL_SERVICE_URL", Config.call_service_url).rstrip("/"),
        request_timeout_seconds=_get_float("REQUEST_TIMEOUT_SECONDS", 60.0),
        language_code=os.getenv("LANGUAGE_CODE", "en-IN"),
        tts_speaker=os.getenv("TTS_SPEAKER", "anushka"),
        synthesize_answers=_get_bool("SYNTHESIZE_ANSWERS", True),
        sample_rate=_get_int("SAMPLE_RATE", 16000),
        cooldown_seconds=_get_int("COOLDOWN_SECONDS", 300),
        status_reset_seconds=_get_float("STATUS_RESET_SECONDS", 3.0),
        state_path=os.getenv("STATE_PATH", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def init_config() -> Config:
    """Load, validate and log configuration. Fails fast on bad values."""
    config = get_config()
    config.validate()
    config.log_config()
    return config
