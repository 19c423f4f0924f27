"""dbcore - backend-agnostic SQL client core."""

from dbcore.__about__ import __version__

__all__ = ["__version__"]
