"""Configuration management for devfleet."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_LABEL_KEY = "com.devcontainer.repo"
DEFAULT_CREDENTIAL_FILES = (
    (Path("~/.config/gh/hosts.yml"), "/home/vscode/.config/gh/hosts.yml"),
)


class FleetSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    label_key: str = Field(default=DEFAULT_LABEL_KEY, validation_alias="DEVCONTAINER_ID_LABEL_KEY")
    label_prefix: str = Field(default="repo", validation_alias="DEVCONTAINER_ID_LABEL_PREFIX")
    log_level: str = Field(default="INFO", validation_alias="DEVFLEET_LOG_LEVEL")
    max_parallel: int = Field(default=4, validation_alias="DEVFLEET_MAX_PARALLEL")
    poll_interval: float = Field(default=1.0, validation_alias="DEVFLEET_POLL_INTERVAL")
    docker_path: str | None = Field(default=None, validation_alias="DOCKER_PATH")
    devcontainer_path: str | None = Field(default=None, validation_alias="DEVCONTAINER_PATH")
    git_path: str | None = Field(default=None, validation_alias="GIT_PATH")
    toolset_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(), validation_alias="DEVFLEET_TOOLSET_PATHS"
    )
    container_user: str = Field(default="vscode", validation_alias="DEVFLEET_CONTAINER_USER")
    workspace_folder: str | None = Field(
        default=None, validation_alias="DEVCONTAINER_WORKSPACE_FOLDER"
    )
    attach_command: str = Field(
        default="/home/vscode/dexec {repo}", validation_alias="DEVFLEET_ATTACH_COMMAND"
    )
    skip_quick: bool = Field(default=False, validation_alias="DEVCONTAINER_SKIP_QUICK")
    credential_files: Annotated[tuple[tuple[Path, str], ...], NoDecode] = Field(
        default=DEFAULT_CREDENTIAL_FILES, validation_alias="DEVFLEET_CREDENTIAL_FILES"
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "DEVFLEET_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("label_key", "label_prefix")
    @classmethod
    def _validate_label_part(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized or "=" in normalized:
            raise ValueError("Label key and prefix must be non-empty and must not contain '='")
        return normalized

    @field_validator("max_parallel")
    @classmethod
    def _validate_max_parallel(cls, value: int) -> int:
        if value < 1:
            raise ValueError("DEVFLEET_MAX_PARALLEL must be >= 1")
        return value

    @field_validator("poll_interval")
    @classmethod
    def _validate_poll_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("DEVFLEET_POLL_INTERVAL must be > 0")
        return value

    @field_validator("toolset_paths", mode="before")
    @classmethod
    def _parse_toolset_paths(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts)
        raise TypeError("DEVFLEET_TOOLSET_PATHS must be a list of paths or a path-separated string")

    @field_validator("credential_files", mode="before")
    @classmethod
    def _parse_credential_files(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, str):
            pairs = []
            for entry in value.split(","):
                entry = entry.strip()
                if not entry:
                    continue
                host, sep, container = entry.partition("=")
                if not sep or not host.strip() or not container.strip():
                    raise ValueError(
                        "DEVFLEET_CREDENTIAL_FILES entries must look like host_path=container_path"
                    )
                pairs.append((Path(host.strip()), container.strip()))
            return tuple(pairs)
        return value

    def workspace_folder_for(self, repo_root: Path) -> str:
        """Return the workspace path a repository is mounted at inside its container."""

        if self.workspace_folder:
            return self.workspace_folder
        return f"/workspaces/{Path(repo_root).name}"


@lru_cache(maxsize=1)
def get_settings() -> FleetSettings:
    """Return cached settings instance."""

    settings = FleetSettings()
    settings.toolset_paths = tuple(path.expanduser().resolve() for path in settings.toolset_paths)
    settings.credential_files = tuple(
        (host.expanduser(), container) for host, container in settings.credential_files
    )
    return settings


__all__ = ["DEFAULT_LABEL_KEY", "FleetSettings", "get_settings"]
