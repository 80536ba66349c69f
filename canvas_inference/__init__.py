"""
VibeCanvas inference layer.

Provider adapters for image and video generation, the media codec used to move
binary payloads through JSON APIs, and the configuration they run against.
"""

__version__ = "0.3.0"
