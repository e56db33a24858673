"""Export engine configuration utilities."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, ClassVar, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import CREATOR, FEATURE_LEVEL


class ExportSettings(BaseModel):
    """Runtime configuration for state export and load."""

    ENV_PREFIX: ClassVar[str] = "ZAPSTATE_"
    ENV_FILE: ClassVar[str | None] = ".env"
    ENV_FILE_ENCODING: ClassVar[str] = "utf-8"

    model_config: ClassVar[ConfigDict] = cast(
        ConfigDict,
        {
            "extra": "ignore",
            "env_prefix": ENV_PREFIX,
        },
    )

    feature_level: int = Field(
        default=FEATURE_LEVEL,
        ge=1,
        description="Schema feature level stamped on exported documents.",
    )
    creator: str = Field(
        default=CREATOR,
        min_length=1,
        description="Identifier of the producing tool.",
    )
    home_dir: Path | None = Field(
        default=None,
        description="Override for the user home directory used by package path resolution.",
    )
    durable_writes: bool = Field(
        default=True,
        description="Fsync exported documents before renaming them into place.",
    )
    include_log: bool = Field(
        default=True,
        description="Keep the session log in exported documents unless the caller removes it.",
    )

    @field_validator("home_dir")
    @classmethod
    def _validate_home_dir(cls, value: Path | None) -> Path | None:
        if value is not None and not value.is_absolute():
            raise ValueError(f"home_dir must be an absolute path: {value}")
        return value

    @property
    def resolved_home_dir(self) -> Path:
        """Home directory that home-relative package paths are computed against."""

        return self.home_dir if self.home_dir is not None else Path.home()

    @staticmethod
    def _parse_env_file(path: Path, encoding: str) -> dict[str, str]:
        """Parse an environment file supporting `export` and quoted values."""

        parsed: dict[str, str] = {}

        for raw_line in path.read_text(encoding=encoding).splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export ") :].strip()

            if "=" not in line:
                continue

            key, raw_value = line.split("=", 1)
            key = key.strip()
            value = raw_value.strip()

            if value and value[0] == value[-1] and value[0] in {'"', "'"}:
                value = value[1:-1]

            parsed[key] = value

        return parsed

    @classmethod
    def from_environment(cls) -> "ExportSettings":
        """Load settings from environment variables or a `.env` file."""

        file_values: dict[str, str] = {}
        if cls.ENV_FILE:
            env_file_path = Path(cls.ENV_FILE)
            if not env_file_path.is_absolute():
                env_file_path = Path.cwd() / env_file_path
            if env_file_path.exists():
                file_values = cls._parse_env_file(env_file_path, cls.ENV_FILE_ENCODING)

        overrides: dict[str, str] = {}
        for field_name in cls.model_fields:
            env_key = f"{cls.ENV_PREFIX}{field_name.upper()}"
            if env_key in os.environ:
                overrides[field_name] = os.environ[env_key]
            elif env_key in file_values:
                overrides[field_name] = file_values[env_key]

        typed_overrides = cast(dict[str, Any], overrides)
        return cls(**typed_overrides)


__all__: list[str] = ["ExportSettings"]
