"""Runtime configuration.

Values resolve in order: explicit argument, environment variable, platform
default.
"""

import os
import platform
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

ENV_CREDENTIAL_FILE = "AWS_CREDENTIAL_FILE"
ENV_INDEX_FILE = "AWS_KEYCHAIN_INDEX"
ENV_BACKEND = "AWS_KEYCHAIN_BACKEND"
ENV_LOG_LEVEL = "AWS_KEYCHAIN_LOG_LEVEL"
ENV_LOG_DIR = "AWS_KEYCHAIN_LOG_DIR"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def default_credential_file() -> Path:
    """Path of the active credentials file read by AWS tooling."""
    return Path.home() / ".aws" / "credential-file"


def default_index_file() -> Path:
    """Platform-specific location of the name index."""
    if platform.system().lower() == "windows":
        return Path.home() / "AppData" / "Local" / "AwsKeychain" / "names"
    return Path.home() / ".config" / "aws-keychain" / "names"


class Settings(BaseModel):
    """Resolved settings for one invocation."""

    credential_file: Path = Field(default_factory=default_credential_file)
    index_file: Path = Field(default_factory=default_index_file)
    backend: Optional[str] = None
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @field_validator("credential_file", "index_file", "log_dir")
    @classmethod
    def _expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @classmethod
    def load(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides: object
    ) -> "Settings":
        """Build settings from the environment, then apply non-None overrides.

        Args:
            environ: Environment mapping, defaults to ``os.environ``.
            **overrides: Explicit values, typically from command-line options.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for field, variable in (
            ("credential_file", ENV_CREDENTIAL_FILE),
            ("index_file", ENV_INDEX_FILE),
            ("backend", ENV_BACKEND),
            ("log_level", ENV_LOG_LEVEL),
            ("log_dir", ENV_LOG_DIR),
        ):
            if environ.get(variable):
                values[field] = environ[variable]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
