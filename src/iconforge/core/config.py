"""Configuration management for Iconforge.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the ICONFORGE_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (ICONFORGE_* prefix)
2. .env file in the project root
3. Default values defined in IconforgeConfig

The OpenAI credential is the one exception to the prefix rule: it is read from
either ``ICONFORGE_OPENAI_API_KEY`` or the conventional ``OPENAI_API_KEY``.

Example .env file:
    OPENAI_API_KEY=sk-...
    ICONFORGE_IMAGE_MODEL=gpt-image-1
    ICONFORGE_IMAGE_SIZE=1024x1024
    ICONFORGE_SERVER_PORT=7860

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
A missing credential does NOT fail at import: it is reported once per batch
by :func:`iconforge.core.service.iconify_batch` so the server can still start
and tell the user what is wrong.

Usage Example
-------------
    from iconforge.core.config import config

    if config.has_credentials:
        print(config.image_model, config.image_size)
"""

import re
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

_SQUARE_SIZE = re.compile(r"^(\d+)x(\d+)$")


class IconforgeConfig(BaseSettings):
    """Main configuration for Iconforge.

    Attributes
    ----------
    Credentials:
        openai_api_key : str | None
            Secret key for the OpenAI Images API. Required for any batch.

    Generation Settings:
        image_model : str
            Model identifier sent with every edit request
        image_size : str
            Square size token (``"1024x1024"``); also quoted in the instruction text

    Network Settings:
        request_timeout : float | None
            Timeout in seconds for OpenAI calls (None keeps the SDK default)
        fetch_timeout : float
            Timeout in seconds for downloading an image returned as a link

    Server Settings:
        server_host : str
            Bind address for uvicorn
        server_port : int
            Port for uvicorn (1024-65535)
        log_level : str
            Root log level used by the entry point

    Examples
    --------
        >>> cfg = IconforgeConfig(openai_api_key="sk-test", _env_file=None)
        >>> cfg.has_credentials
        True
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ICONFORGE_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Credentials
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ICONFORGE_OPENAI_API_KEY", "OPENAI_API_KEY"),
        description="OpenAI API key used to authenticate image edit requests",
    )

    # Generation settings
    image_model: str = Field(
        default="gpt-image-1",
        description="OpenAI image model used for edits",
    )
    image_size: str = Field(
        default="1024x1024",
        description="Square output size token sent to the API",
    )

    # Network settings
    request_timeout: float | None = Field(
        default=None,
        description="Timeout in seconds for OpenAI calls (None keeps the SDK default)",
        gt=0,
    )
    fetch_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for downloading a linked result image",
        gt=0,
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level for the application entry point",
    )

    @field_validator("openai_api_key")
    @classmethod
    def _blank_key_is_missing(cls, value: str | None) -> str | None:
        """Treat an empty or whitespace-only key the same as an unset one."""
        if value is None or not value.strip():
            return None
        return value.strip()

    @field_validator("image_size")
    @classmethod
    def _require_square_size(cls, value: str) -> str:
        """Only square ``NxN`` size tokens are accepted."""
        match = _SQUARE_SIZE.match(value.strip())
        if not match or match.group(1) != match.group(2):
            raise ValueError(f"image_size must be a square 'NxN' token, got {value!r}")
        return value.strip()

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @property
    def has_credentials(self) -> bool:
        """True when an API key is configured."""
        return self.openai_api_key is not None

    def require_credentials(self) -> str:
        """Return the API key or raise if none is configured.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if self.openai_api_key is None:
            raise ConfigurationError(
                "OpenAI API key not configured. Please check your environment variables."
            )
        return self.openai_api_key


# Global configuration instance
# Loads values from environment variables (ICONFORGE_* prefix, plus OPENAI_API_KEY)
# and the .env file.
config = IconforgeConfig()
