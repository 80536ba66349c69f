"""Configuration modules"""

from .config_loader import ConfigLoader
from .settings import GenerationSettings, load_settings

__all__ = ["ConfigLoader", "GenerationSettings", "load_settings"]
