"""FastAPI facade over the sync engine."""

from .main import app, create_app, get_engine

__all__ = ["app", "create_app", "get_engine"]
