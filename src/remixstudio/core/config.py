"""Configuration management for Remix Studio.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the REMIX_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (REMIX_* prefix)
2. .env file in the project root
3. Default values defined in RemixConfig

The Gemini API key is the one exception to the prefix rule: it is also read
from the conventional ``GEMINI_API_KEY`` and ``GOOGLE_API_KEY`` variables so
that keys provisioned for other Google tooling are picked up unchanged.

Example .env file:
    GEMINI_API_KEY=your-key
    REMIX_AUTH_PROVIDER=supabase
    REMIX_SUPABASE_URL=https://xyz.supabase.co
    REMIX_SUPABASE_KEY=anon-key
    REMIX_SERVER_PORT=8000

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.

Usage Example
-------------
    from remixstudio.core.config import config

    print(config.gemini_model)
    print(config.max_upload_bytes)

Category Parameters
-------------------
Whether a category needs a second image, and how many results it expects,
is not configured here: both live on each stack in ``catalog.json`` under
``data_dir``, so a new category never needs a code or environment change.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Shipped reference data (stacks and templates).
PACKAGE_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class RemixConfig(BaseSettings):
    """Main configuration for Remix Studio.

    Attributes
    ----------
    Generation Backend:
        generation_backend : str
            Registered backend name used at startup (default: "gemini")
        gemini_api_key : str
            API key for the Gemini image model (empty disables generation)
        gemini_model : str
            Gemini model identifier used for image generation

    Authentication:
        auth_provider : Literal["memory", "supabase"]
            Auth implementation selected at process start
        supabase_url : str
            Supabase project URL (supabase provider only)
        supabase_key : str
            Supabase anon key (supabase provider only)
        min_password_length : int
            Minimum password length enforced by the in-memory provider

    Uploads:
        max_upload_bytes : int
            Largest accepted image upload in bytes (10 MiB)
        allowed_mime_types : tuple[str, ...]
            MIME types accepted for uploads

    Sessions:
        max_sessions : int
            Most remix sessions kept in memory; the least recently used
            session is evicted beyond this
        session_ttl_seconds : int
            Sessions untouched for this long are forgotten

    Downloads:
        jpeg_quality : int
            Quality used for the lossy JPEG re-encoding (1-95)

    Paths:
        data_dir : Path
            Directory containing ``catalog.json``

    Server:
        server_host : str
            Bind address for uvicorn
        server_port : int
            Bind port for uvicorn (1024-65535)
        log_level : str
            Root log level name
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REMIX_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Generation backend
    generation_backend: str = Field(
        default="gemini",
        description="Registered generation backend name",
    )
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "gemini_api_key", "REMIX_GEMINI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"
        ),
        description="API key for the Gemini image model",
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Gemini model used for image generation",
    )

    # Authentication
    auth_provider: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Auth implementation selected at process start",
    )
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_key: str = Field(default="", description="Supabase anon key")
    min_password_length: int = Field(default=6, ge=1, le=128)

    # Uploads
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted image upload in bytes",
        gt=0,
    )
    allowed_mime_types: tuple[str, ...] = Field(
        default=("image/jpeg", "image/png", "image/webp"),
        description="MIME types accepted for uploads",
    )

    # Sessions
    max_sessions: int = Field(
        default=200,
        description="Most remix sessions kept in memory",
        ge=1,
    )
    session_ttl_seconds: int = Field(
        default=3600,
        description="Idle time after which a session is forgotten",
        gt=0,
    )

    # Downloads
    jpeg_quality: int = Field(default=92, ge=1, le=95)

    # Paths
    data_dir: Path = Field(
        default=PACKAGE_DATA_DIR,
        description="Directory containing catalog.json",
    )

    # Server
    server_host: str = Field(default="0.0.0.0", description="Server bind address")
    server_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: str = Field(default="INFO", description="Root log level")


# Global configuration instance
config = RemixConfig()
