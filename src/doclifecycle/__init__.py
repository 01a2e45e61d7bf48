"""doclifecycle - Versioned document envelopes with draft and publish lifecycle."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("doclifecycle")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
