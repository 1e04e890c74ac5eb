"""HTTP surface (FastAPI): public, owner and admin routes."""

from aquamarket.api.app import create_app

__all__ = ["create_app"]
