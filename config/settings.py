"""Application settings and configuration."""

import json
import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Third-party loggers that are chatty at DEBUG/INFO
NOISY_LOGGERS = ("PIL", "multipart", "sqlalchemy.engine")


class JSONLogFormatter(logging.Formatter):
    """One JSON object per log line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class HookSource(BaseModel):
    """A package to scan for hook implementations."""

    path: str = Field(..., description="Importable package path to scan, e.g. 'myproject.hooks'")
    prefix: str = Field(default="", description="Class-name prefix a hook class must carry to be picked up")


class Settings(BaseSettings):
    """Service settings, read from the environment and an optional ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="Pixelvault Image Service", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["local", "dev", "stage", "prod"] = Field(
        default="local",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # HTTP surface
    api_prefix: str = Field(default="/api/v1", description="API route prefix")
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")
    max_upload_size: int = Field(
        default=10 * 1024 * 1024,  # 10MB
        description="Largest accepted original image in bytes"
    )

    # Blob storage (originals and variations)
    storage_type: Literal["filesystem", "database", "memory"] = Field(
        default="filesystem",
        description="Where original images and cached variations are kept"
    )
    storage_root: Path = Field(
        default=Path("data/images"),
        description="Base directory of the sharded filesystem trees"
    )

    # Image records
    metadata_storage: Literal["memory", "database"] = Field(
        default="memory",
        description="Where image records and their metadata are kept"
    )

    @field_validator("storage_root", mode="before")
    @classmethod
    def resolve_storage_path(cls, v: str | Path) -> Path:
        """Accept plain strings from the environment."""
        if isinstance(v, str):
            return Path(v)
        return v

    # Database
    database_url: str = Field(
        default="sqlite:///data/db.sqlite3",
        description="SQLAlchemy URL for image records and database-backed blobs"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Transformations
    numeric_transformation_params: list[str] = Field(
        default=["width", "height", "x", "y"],
        description="Transformation parameter keys whose values are parsed as integers"
    )
    max_transformations: int = Field(
        default=20,
        ge=1,
        description="Maximum number of transformations accepted in one request"
    )
    max_image_dimension: int = Field(
        default=10000,
        ge=1,
        description="Largest width or height, in pixels, a transformation may produce"
    )
    variation_cache_enabled: bool = Field(
        default=True,
        description="Serve and store resize-driven variations through the variation cache"
    )

    # Hooks
    hook_sources: list[HookSource] = Field(
        default_factory=list,
        description="Packages scanned for hook implementations at startup"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root logging level"
    )
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Format of plain-text log lines"
    )
    log_json: bool = Field(default=False, description="Emit log lines as JSON objects")
    log_file: Optional[Path] = Field(
        default=None,
        description="Also append logs to this file"
    )

    @property
    def log_level_numeric(self) -> int:
        return getattr(logging, self.log_level)

    @property
    def originals_root(self) -> Path:
        """Directory holding the sharded original images."""
        return self.get_storage_path("originals")

    @property
    def variations_root(self) -> Path:
        """Directory holding the sharded image variations."""
        return self.get_storage_path("variations")

    def configure_logging(self) -> None:
        """Install stdout (and optional file) handlers on the root logger."""
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.log_file))

        formatter = JSONLogFormatter() if self.log_json else logging.Formatter(self.log_format)
        for handler in handlers:
            handler.setFormatter(formatter)

        logging.basicConfig(level=self.log_level_numeric, handlers=handlers, force=True)

        if self.debug:
            logging.getLogger("pixelvault").setLevel(logging.DEBUG)
        else:
            for name in NOISY_LOGGERS:
                logging.getLogger(name).setLevel(logging.WARNING)

    def get_storage_path(self, *paths: str) -> Path:
        """Join ``paths`` onto the storage root."""
        return self.storage_root.joinpath(*paths)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
