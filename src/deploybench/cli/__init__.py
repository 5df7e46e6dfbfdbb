"""Command line interface for deploy-bench."""

from .main import app

__all__ = ["app"]
