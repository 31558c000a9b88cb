"""Cloudinary service for storing and re-signing patient images."""

import logging
import os
import re
import time
from typing import Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse
import cloudinary.uploader
import cloudinary.utils
import httpx
from fastapi import HTTPException, status
from lunglens.config.settings import Settings
from lunglens.schemas.images import ImageUploadResponse

logger = logging.getLogger(__name__)

DELIVERY_TYPES = {"upload", "private", "authenticated"}
SIGNATURE_SEGMENT = re.compile(r"^s--[^/]+--$")
VERSION_SEGMENT = re.compile(r"^v\d+$")


def split_object_key(key: str) -> Tuple[str, str]:
    """Split an object key into Cloudinary public_id and format."""
    public_id, _, extension = key.rpartition(".")
    if not public_id or not extension or "/" in extension:
        return key, ""
    return public_id, extension


def extract_object_key(url: str) -> Optional[str]:
    """
    Recover the object key from a previously issued image URL.

    Handles signed download URLs (public_id and format in the query) and
    delivery URLs (key in the path after the delivery type, behind optional
    signature and version segments). Returns None for anything else.
    """
    if not url or not url.strip():
        return None

    parsed = urlparse(url.strip())
    query = parse_qs(parsed.query)

    if "public_id" in query:
        public_id = query["public_id"][0]
        image_format = query.get("format", [""])[0]
        return f"{public_id}.{image_format}" if image_format else public_id

    segments = [unquote(segment) for segment in parsed.path.split("/") if segment]
    for index, segment in enumerate(segments):
        if segment in DELIVERY_TYPES and index > 0 and segments[index - 1] in ("image", "raw", "video"):
            rest = segments[index + 1:]
            while rest and (SIGNATURE_SEGMENT.match(rest[0]) or VERSION_SEGMENT.match(rest[0])):
                rest = rest[1:]
            return "/".join(rest) or None

    return None


class ImageStore:
    """Upload patient X-rays and hand out time-limited signed URLs."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.folder = settings.CLOUDINARY_FOLDER
        self.upload_url_ttl = settings.UPLOAD_URL_TTL
        self.download_url_ttl = settings.DOWNLOAD_URL_TTL
        self.max_upload_bytes = settings.MAX_UPLOAD_BYTES
        self.transport = transport

    def validate_image(self, content: bytes, content_type: Optional[str], filename: Optional[str]) -> None:
        """Reject non-image uploads and files over the size limit."""
        if not content_type or not content_type.startswith("image/"):
            logger.warning(f"Invalid file type: {filename} ({content_type})")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only image files are allowed"
            )
        if not content:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Uploaded file is empty"
            )
        if len(content) > self.max_upload_bytes:
            logger.warning(f"File too large: {filename} ({len(content)} bytes)")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File exceeds the {self.max_upload_bytes // (1024 * 1024)}MB limit"
            )

    def signed_url(self, key: str, expires_in: int) -> str:
        """Build a private download URL for a key that expires after expires_in seconds."""
        public_id, image_format = split_object_key(key)
        return cloudinary.utils.private_download_url(
            public_id,
            image_format,
            resource_type="image",
            type="private",
            expires_at=int(time.time()) + expires_in,
        )

    def upload_image(
        self,
        content: bytes,
        filename: Optional[str],
        content_type: Optional[str],
        patient_id: Optional[str] = None,
    ) -> ImageUploadResponse:
        """Upload an image and return a 7-day signed URL plus its object key."""
        self.validate_image(content, content_type, filename)

        folder = f"{self.folder}/{patient_id}" if patient_id else self.folder
        logger.info(f"Uploading image to Cloudinary: {filename}, folder: {folder}, size: {len(content)} bytes")
        try:
            upload_result = cloudinary.uploader.upload(
                content,
                folder=folder,
                resource_type="image",
                type="private",
                use_filename=bool(filename),
                filename_override=filename,
                unique_filename=True,
            )
        except Exception as e:
            logger.error(f"Error uploading image to Cloudinary: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to upload image"
            )
        logger.debug(f"Upload result: {upload_result}")

        public_id = upload_result.get("public_id")
        if not public_id:
            logger.error(f"Cloudinary upload returned no public_id: {upload_result}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to upload image"
            )
        image_format = upload_result.get("format") or os.path.splitext(filename or "")[1].lstrip(".")
        key = f"{public_id}.{image_format}" if image_format else public_id

        image_url = self.signed_url(key, self.upload_url_ttl)
        logger.info(f"Image uploaded successfully: {key}")
        return ImageUploadResponse(imageUrl=image_url, imageKey=key)

    async def download_image(self, url: str) -> Tuple[bytes, str, str]:
        """Re-sign a previously issued URL and fetch the image bytes."""
        key = extract_object_key(url)
        if not key:
            logger.warning(f"Could not extract object key from URL: {url}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid image URL"
            )

        signed = self.signed_url(key, self.download_url_ttl)
        logger.info(f"Downloading image: {key}")
        try:
            async with httpx.AsyncClient(timeout=60.0, transport=self.transport, follow_redirects=True) as client:
                response = await client.get(signed)
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch image from Cloudinary: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to download image"
            )

        if response.status_code == status.HTTP_404_NOT_FOUND:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Image not found"
            )
        if not response.is_success:
            logger.error(f"Cloudinary download error: {response.status_code}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to download image"
            )

        content_type = response.headers.get("content-type", "application/octet-stream")
        filename = key.rsplit("/", 1)[-1]
        return response.content, content_type, filename
