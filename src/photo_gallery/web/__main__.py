"""Main entry point for photo-gallery web server."""

import logging
import sys

import uvicorn

from .api import create_app
from .config import get_default_config


def main(host: str = "0.0.0.0", port: int = 8000):
    """Run the web server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = get_default_config()
    print("Starting photo-gallery web server...")
    print(f"API documentation: http://localhost:{port}/docs")
    print(f"Database: {config.db_path}")
    print(f"Uploads: {config.upload_dir}")
    if not config.api_tokens:
        print("\nNote: set PHOTO_GALLERY_TOKENS='token=user[:role],...' to allow uploads")
    print("\nPress Ctrl+C to stop the server")

    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level="info",
        reload=False,
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
