"""HTTP surface for the SHIFT gateway."""

from .app import create_app

__all__ = ["create_app"]
