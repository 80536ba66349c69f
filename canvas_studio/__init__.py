"""
VibeCanvas studio backend.

Generation rounds across providers, the user's media library and the Flask
JSON API that fronts both.
"""

from .app import build_studio, create_app

__all__ = ["build_studio", "create_app"]
