"""Regular and admin session handling."""

from .store import SessionStore

__all__ = ["SessionStore"]
