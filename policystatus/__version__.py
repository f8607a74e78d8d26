"""Version of the policystatus package."""

from __future__ import annotations

VERSION_INFO = (0, 3, 0)
__version__ = ".".join(str(part) for part in VERSION_INFO)

PACKAGE_NAME = "policystatus"


def get_version_tuple() -> tuple[int, int, int]:
    """Return the version as (major, minor, patch)."""
    return VERSION_INFO


__all__ = ["__version__", "VERSION_INFO", "PACKAGE_NAME", "get_version_tuple"]
