"""Cloudinary configuration."""

import logging
import cloudinary
from lunglens.config.settings import Settings

logger = logging.getLogger(__name__)


def configure_cloudinary(settings: Settings) -> None:
    """Configure the Cloudinary SDK with account credentials."""
    if not settings.CLOUDINARY_CLOUD_NAME:
        logger.warning("CLOUDINARY_CLOUD_NAME is not set; image uploads will fail")

    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True,
    )
