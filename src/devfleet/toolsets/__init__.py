"""Toolset models and loader exports."""

from .loader import ToolsetLoadError, ToolsetLoader, load_toolsets
from .models import BUILTIN_TOOLSETS, Toolset

__all__ = [
    "BUILTIN_TOOLSETS",
    "Toolset",
    "ToolsetLoadError",
    "ToolsetLoader",
    "load_toolsets",
]
