"""Configuration for the photo-gallery web API."""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

from photo_gallery.processing.auth import ENV_API_TOKENS, parse_tokens

logger = logging.getLogger(__name__)

# Default configuration for end-users
DEFAULT_DB_PATH = str(Path.home() / ".photo-gallery" / "gallery.db")
DEFAULT_UPLOAD_DIR = str(Path.home() / ".photo-gallery" / "uploads")
DEFAULT_URL_PREFIX = "/uploads"
DEFAULT_MAX_UPLOAD_SIZE_MB = 100
DEFAULT_MAX_WORKERS = 4  # Threads for blocking image work

# Configuration file path
CONFIG_FILE_PATH = Path.home() / ".photo-gallery" / "config.json"

ENV_DB_PATH = "PHOTO_GALLERY_DB"
ENV_UPLOAD_DIR = "UPLOAD_DIR"
ENV_MAX_UPLOAD_SIZE_MB = "MAX_UPLOAD_SIZE_MB"
ENV_RAW_DECODE = "PHOTO_GALLERY_RAW_DECODE"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}")
        return None


class GalleryConfig:
    """Configuration manager for the web application."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        upload_dir: Optional[str] = None,
        url_prefix: Optional[str] = None,
        max_upload_size_mb: Optional[int] = None,
        raw_full_decode: Optional[bool] = None,
        api_tokens: Optional[Dict[str, Tuple[str, str]]] = None,
        max_workers: Optional[int] = None,
    ):
        # Expand ~ in paths if present
        db_path = db_path or os.environ.get(ENV_DB_PATH)
        upload_dir = upload_dir or os.environ.get(ENV_UPLOAD_DIR)
        self.db_path = os.path.expanduser(db_path) if db_path else DEFAULT_DB_PATH
        self.upload_dir = os.path.expanduser(upload_dir) if upload_dir else DEFAULT_UPLOAD_DIR
        self.url_prefix = url_prefix or DEFAULT_URL_PREFIX
        self.max_upload_size_mb = (
            max_upload_size_mb or _env_int(ENV_MAX_UPLOAD_SIZE_MB) or DEFAULT_MAX_UPLOAD_SIZE_MB
        )
        self.raw_full_decode = raw_full_decode if raw_full_decode is not None else _env_flag(ENV_RAW_DECODE)
        if api_tokens is None:
            api_tokens = parse_tokens(os.environ.get(ENV_API_TOKENS, ""))
        self.api_tokens = api_tokens
        self.max_workers = max_workers or DEFAULT_MAX_WORKERS

        # Ensure storage directories exist
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        Path(self.upload_dir).mkdir(parents=True, exist_ok=True)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @classmethod
    def load_from_file(cls, config_path: Optional[Path] = None) -> "GalleryConfig":
        """Load configuration from JSON file."""
        if config_path is None:
            config_path = CONFIG_FILE_PATH

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)

            return cls(
                db_path=config_data.get("db_path"),
                upload_dir=config_data.get("upload_dir"),
                url_prefix=config_data.get("url_prefix"),
                max_upload_size_mb=config_data.get("max_upload_size_mb"),
                raw_full_decode=config_data.get("raw_full_decode"),
                max_workers=config_data.get("max_workers"),
            )
        except (json.JSONDecodeError, IOError) as e:
            # If config file is invalid, log warning and use defaults
            logger.warning(f"Failed to load config file {config_path}: {e}")
            return cls()

    def save_to_file(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to JSON file."""
        if config_path is None:
            config_path = CONFIG_FILE_PATH

        # Ensure config directory exists
        config_path.parent.mkdir(parents=True, exist_ok=True)

        config_data = {
            "db_path": self.db_path,
            "upload_dir": self.upload_dir,
            "url_prefix": self.url_prefix,
            "max_upload_size_mb": self.max_upload_size_mb,
            "raw_full_decode": self.raw_full_decode,
            "max_workers": self.max_workers,
            # API tokens stay in the environment
        }

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, indent=2, ensure_ascii=False)
        except IOError as e:
            logger.error(f"Failed to save config file {config_path}: {e}")

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "db_path": self.db_path,
            "upload_dir": self.upload_dir,
            "url_prefix": self.url_prefix,
            "max_upload_size_mb": self.max_upload_size_mb,
            "raw_full_decode": self.raw_full_decode,
            "max_workers": self.max_workers,
            "api_tokens_configured": len(self.api_tokens),
        }


def get_default_config() -> GalleryConfig:
    """Create default configuration for web application."""
    return GalleryConfig.load_from_file()
