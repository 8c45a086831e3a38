"""Toolset loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .. import DevfleetError
from .models import BUILTIN_TOOLSETS, Toolset


class ToolsetLoadError(DevfleetError):
    """Raised when one or more toolset files cannot be parsed."""


class ToolsetLoader:
    """Loads toolsets from YAML files on top of the built-in defaults."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        return list(self._search_paths)

    def load_all(self) -> dict[str, Toolset]:
        """Return built-in toolsets overlaid with those found on disk.

        Later search paths override earlier ones when toolset ids collide. A
        file may hold a single toolset mapping or a list of them.
        """

        toolsets: dict[str, Toolset] = {toolset.id: toolset for toolset in BUILTIN_TOOLSETS}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                entries = document if isinstance(document, list) else [document]
                for entry in entries:
                    try:
                        toolset = Toolset.model_validate(entry)
                    except ValidationError as exc:
                        errors.append(f"Toolset validation error in {path}: {exc}")
                        continue
                    toolsets[toolset.id] = toolset

        if errors:
            raise ToolsetLoadError("; ".join(errors))

        return toolsets


def load_toolsets(search_paths: Iterable[Path] | None = None) -> list[Toolset]:
    """Convenience wrapper returning toolsets in a stable order."""

    loader = ToolsetLoader(search_paths)
    return list(loader.load_all().values())


__all__ = ["ToolsetLoadError", "ToolsetLoader", "load_toolsets"]
