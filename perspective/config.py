"""
Runtime configuration for Perspective.
Everything is read from environment variables at import time.
"""

import logging
import os
import secrets
import warnings

# Hosted backend (table API, object storage and auth live behind one URL)
BACKEND_URL = os.getenv("PERSPECTIVE_BACKEND_URL", "http://localhost:54321").rstrip("/")
BACKEND_ANON_KEY = os.getenv("PERSPECTIVE_BACKEND_ANON_KEY", "")
BACKEND_TIMEOUT = float(os.getenv("PERSPECTIVE_BACKEND_TIMEOUT", "10"))

BLOGS_TABLE = "blogs"
IMAGE_BUCKET = "blog-images"

# Cover images above this size are rejected before any upload
MAX_IMAGE_BYTES = 5 * 1024 * 1024

LOG_LEVEL = os.getenv("PERSPECTIVE_LOG_LEVEL", "INFO").upper()

IS_PRODUCTION = os.getenv("PERSPECTIVE_ENVIRONMENT") == "production"

SECRET_KEY = os.getenv("PERSPECTIVE_SECRET_KEY")

if not SECRET_KEY:
    if IS_PRODUCTION:
        raise RuntimeError("PERSPECTIVE_SECRET_KEY must be set in production environment")
    warnings.warn("PERSPECTIVE_SECRET_KEY not set - using random key (sessions won't persist across restarts)")
    SECRET_KEY = secrets.token_hex(32)


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
