"""finanzas backend package."""

from .api import app

__all__ = ["app"]
