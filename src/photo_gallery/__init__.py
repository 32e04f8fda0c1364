"""photo-gallery - photographer gallery backend with RAW processing."""

__version__ = "0.1.0"
__author__ = "photo-gallery contributors"
__license__ = "MIT"

import logging

from .errors import GalleryError
from .processing.classifier import classify
from .processing.models import Photo, ProcessingSettings

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "GalleryError",
    "Photo",
    "ProcessingSettings",
    "classify",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
