"""HTTP API for the absence engine."""

from absence_engine.api.app import create_app

__all__ = ["create_app"]
