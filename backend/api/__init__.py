"""API route handlers."""
from . import auth, open_banking

__all__ = ["auth", "open_banking"]
