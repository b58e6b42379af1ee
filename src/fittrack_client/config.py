# src/fittrack_client/config.py

import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# .env is at the project root, two levels up from src/fittrack_client/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)
    logger.info(f"FitTrack: Loaded .env file from: {ENV_FILE_PATH}")
else:
    logger.debug(f"FitTrack: .env file not found at {ENV_FILE_PATH}. Relying on environment variables.")

DEFAULT_HEALTH_PROBE_PATHS = ["/health/ping", "/auth/demo-users", "/", "/favicon.ico"]


class Settings(BaseSettings):
    # === Primary API ===
    API_BASE_URL: AnyHttpUrl

    # === Backend-as-a-service (direct query tier) ===
    BACKEND_URL: Optional[AnyHttpUrl] = None
    BACKEND_ANON_KEY: Optional[str] = None

    # === Session lifecycle ===
    SESSION_TIMEOUT_SECONDS: float = 30 * 60
    SESSION_CHECK_INTERVAL_SECONDS: float = 60

    # === Health monitoring ===
    HEALTH_CACHE_TTL_SECONDS: float = 5.0
    HEALTH_PROBE_TIMEOUT_SECONDS: float = 2.0
    HEALTH_FALLBACK_PROBE_TIMEOUT_SECONDS: float = 1.5
    # Pydantic sees this as a string from the env first, the validator turns it into List[str]
    HEALTH_PROBE_PATHS: Union[str, List[str]] = DEFAULT_HEALTH_PROBE_PATHS

    # === Fallback tiers ===
    STRATEGY_TIMEOUT_SECONDS: float = 5.0
    DEMO_USERS_TIMEOUT_SECONDS: float = 8.0
    ALLOW_OFFLINE_DEMO_LOGIN: bool = False

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def api_base_url(self) -> str:
        return str(self.API_BASE_URL).rstrip("/")

    @property
    def backend_url(self) -> Optional[str]:
        return str(self.BACKEND_URL).rstrip("/") if self.BACKEND_URL else None

    @field_validator("HEALTH_PROBE_PATHS", mode="before")
    @classmethod
    def parse_comma_separated_paths(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            if not v.strip():
                return []
            return [path.strip() for path in v.split(",") if path.strip()]
        if isinstance(v, list):
            return v
        raise TypeError("HEALTH_PROBE_PATHS: Expected a comma-separated string or a list.")

    @model_validator(mode="after")
    def check_consistency(self) -> "Settings":
        if not isinstance(self.HEALTH_PROBE_PATHS, list) or not self.HEALTH_PROBE_PATHS:
            raise ValueError("HEALTH_PROBE_PATHS must contain at least one path.")
        if bool(self.BACKEND_URL) != bool(self.BACKEND_ANON_KEY):
            raise ValueError("BACKEND_URL and BACKEND_ANON_KEY must be set together.")
        for name in (
            "SESSION_TIMEOUT_SECONDS",
            "SESSION_CHECK_INTERVAL_SECONDS",
            "HEALTH_CACHE_TTL_SECONDS",
            "HEALTH_PROBE_TIMEOUT_SECONDS",
            "HEALTH_FALLBACK_PROBE_TIMEOUT_SECONDS",
            "STRATEGY_TIMEOUT_SECONDS",
            "DEMO_USERS_TIMEOUT_SECONDS",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive.")
        return self


def load_settings(**overrides: Any) -> Settings:
    """
    Instantiates Settings from the environment (and .env).
    Any missing or invalid value is fatal at startup and surfaces as ConfigurationError.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        logger.error(f"FitTrack: Error instantiating Settings: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.info(f"FitTrack: API base URL: {settings.api_base_url}")
    logger.info(f"FitTrack: Backend URL: {settings.backend_url or 'not configured'}")
    logger.info(f"FitTrack: Session timeout: {settings.SESSION_TIMEOUT_SECONDS}s")
    return settings
