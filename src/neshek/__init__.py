"""neshek - Maps object schemas onto relational tables and fetches object graphs."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("neshek")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
