"""Version of the fee_sharing package. Kept import-free for packaging tools."""

__version__ = "0.1.0"

VERSION_TUPLE = tuple(int(p) for p in __version__.split("."))

__all__ = ["__version__", "VERSION_TUPLE"]
