"""Build, open and stop per-repository devcontainers."""

__version__ = "0.1.0"


class DevfleetError(RuntimeError):
    """Base class for devfleet errors."""


__all__ = ["DevfleetError", "__version__"]
