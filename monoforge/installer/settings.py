"""Installer settings loaded from MONOFORGE_* environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MonoforgeSettings(BaseSettings):
    """Per-user settings that do not belong in the committed monorepo config.

    All fields are read from environment variables with the ``MONOFORGE_``
    prefix.  For example, ``MONOFORGE_MAX_INSTALL_ATTEMPTS=3`` maps to
    ``max_install_attempts``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONOFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Folders ---------------------------------------------------------------
    global_folder: Path = Field(default_factory=lambda: Path.home() / ".monoforge")
    """Per-user cache folder shared by every monorepo on this machine."""

    temp_folder_override: Path | None = None
    """Replaces ``<root>/common/temp`` when set."""

    pnpm_store_path: Path | None = None
    """Overrides the store location for ``store: local`` pnpm repositories."""

    # -- Install ---------------------------------------------------------------
    max_install_attempts: int = 1
    """Default attempt limit for the package-manager install command."""

    registry_query_attempts: int = 3
    registry_query_timeout: float = 60.0
    """Seconds allowed for a single ``view``/``info`` query."""

    allow_unsupported_tool_version: bool = False

    # -- Release check ---------------------------------------------------------
    registry_url: str = "https://registry.npmjs.org"
    network_timeout: float = 10.0
    suppress_release_check: bool = False


@lru_cache(maxsize=1)
def get_settings() -> MonoforgeSettings:
    """Settings for this process, read once from the environment and ``.env``.

    Tests call ``get_settings.cache_clear()`` after changing ``MONOFORGE_*``
    variables.
    """
    return MonoforgeSettings()
