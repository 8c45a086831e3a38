"""Toolset models describing the executables a devcontainer must provide."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class Toolset(BaseModel):
    """A named group of executables checked after every build."""

    id: str = Field(..., description="Unique identifier for the toolset.")
    description: str = Field(default="", description="Human-friendly description.")
    executables: list[str] = Field(
        default_factory=list,
        description="Executables that must resolve on PATH inside the container.",
    )
    skip_flag: Literal["skip_ai_clis", "skip_playwright"] | None = Field(
        default=None,
        description="Build flag that disables this toolset when set.",
    )

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Toolset id must not be empty")
        return normalized

    @field_validator("executables", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            return value.split()
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("executables must be a sequence of strings")


BUILTIN_TOOLSETS: tuple[Toolset, ...] = (
    Toolset(
        id="base",
        description="Language runtimes every devcontainer ships",
        executables=["dotnet", "node", "npm"],
    ),
    Toolset(
        id="ai-clis",
        description="AI assistant command line tools",
        executables=["claude", "gemini", "codex"],
        skip_flag="skip_ai_clis",
    ),
)


__all__ = ["BUILTIN_TOOLSETS", "Toolset"]
