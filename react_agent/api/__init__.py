"""
FastAPI server module for react-agent.

Provides the native run API and OpenAI-compatible REST endpoints.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
