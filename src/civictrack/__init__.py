"""civictrack: civic issue reporting backend with a role-gated status lifecycle."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("civictrack")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from civictrack.core import CivicDB, Issue, User

__all__ = ["CivicDB", "Issue", "User", "__version__"]
