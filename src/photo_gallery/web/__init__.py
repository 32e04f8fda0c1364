"""photo-gallery web interface."""

from .api import create_app, get_app
from .config import GalleryConfig, get_default_config

__all__ = ["create_app", "get_app", "GalleryConfig", "get_default_config"]
