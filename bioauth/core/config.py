import logging
import os
from typing import Any, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_settings_instance: Optional["Settings"] = None

dont_use_env = os.getenv("BIOAUTH_NO_ENV", "false").lower() in ("true", "1", "t")


class Settings(BaseSettings):
    """
    Manages all application configuration using Pydantic.
    Loads settings from environment variables so deployments only need to set ORIGIN and RP ID.
    """
    # Application settings
    APP_NAME: str = "BioAuth"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Enable and disable features as you want
    ADMIN_ROUTES_ENABLED: bool = True
    CORS_ENABLED: bool = True

    # Webauthn settings
    WEBAUTHN_RP_ID: str = "localhost"  # The domain of your site
    WEBAUTHN_RP_NAME: str = "Biometric App"
    WEBAUTHN_ORIGIN: str = "http://localhost:3000"  # must match clientData.origin exactly
    VERIFY_RP_ID_HASH: bool = False  # compare authData[0:32] with sha256(RP ID)

    # Ceremony settings
    CHALLENGE_LIFETIME_SECONDS: int = 300
    CEREMONY_TIMEOUT_MS: int = 60000  # advisory only, sent to the browser

    model_config = SettingsConfigDict(env_file=None if dont_use_env else os.getenv("ENV_FILE_NAME", ".env"),
                                      env_file_encoding='utf-8', extra='ignore')


def init_settings(**kwargs: Any) -> "Settings":
    """
    Initializes or re-initializes the global settings singleton. Call this at
    application startup or in tests to override values.

    Args:
        **kwargs: Keyword arguments to initialize settings with.
    """
    global _settings_instance, dont_use_env
    if _settings_instance is not None:
        logger.warning("Settings have already been initialized. Re-initializing.")
    dont_use_env = kwargs.pop("dont_use_env", True)
    _settings_instance = Settings(**kwargs)
    return _settings_instance


def get_settings() -> "Settings":
    """
    Retrieves the global settings singleton.

    If settings have not been initialized via `init_settings()`, they are
    auto-initialized from the environment unless `BIOAUTH_NO_ENV` is set.
    """
    global _settings_instance
    if _settings_instance is None:
        if dont_use_env:
            raise RuntimeError(
                "BIOAUTH_NO_ENV is set. Settings must be initialized manually "
                "by calling `init_settings()` at application startup."
            )
        logger.debug("Auto-initializing settings on first access.")
        _settings_instance = init_settings(dont_use_env=False)
    return _settings_instance


# --- The Global Settings Proxy ---
# `from bioauth.core.config import settings` works before initialization;
# the first attribute access triggers get_settings().

class _SettingsProxy:
    def __getattr__(self, name: str) -> Any:
        return getattr(get_settings(), name)


settings = _SettingsProxy()
