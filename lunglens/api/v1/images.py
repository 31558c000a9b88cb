"""Patient image API routes."""

import logging
from typing import Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, status, Form, File, UploadFile, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from lunglens.api.deps import get_image_store
from lunglens.schemas.images import ImageUploadResponse
from lunglens.utils.cloudinary_service import ImageStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["images"])


def build_content_disposition(filename: str) -> str:
    """Attachment header that stays Latin-1 encodable for any object key."""
    quoted = quote(filename)
    if quoted == filename:
        return f'attachment; filename="{filename}"'
    fallback = filename.encode("ascii", "replace").decode("ascii")
    for char in ('?', '"', "\\"):
        fallback = fallback.replace(char, "_")
    return f"attachment; filename=\"{fallback}\"; filename*=utf-8''{quoted}"


@router.post("/upload-patient-image", response_model=ImageUploadResponse, status_code=status.HTTP_200_OK)
async def upload_patient_image_endpoint(
    image: UploadFile = File(...),
    patientId: Optional[str] = Form(None),
    images: ImageStore = Depends(get_image_store),
) -> ImageUploadResponse:
    """
    Upload a patient X-ray to object storage.

    Returns a signed URL valid for 7 days and the object key. The caller
    adds the URL to the patient's images and saves the record.
    """
    try:
        content = await image.read()
        logger.info(f"Uploading image for patient {patientId}: {image.filename} ({len(content)} bytes)")
        return await run_in_threadpool(
            images.upload_image, content, image.filename, image.content_type, patient_id=patientId
        )
    except HTTPException:
        logger.error("HTTPException raised in upload_patient_image_endpoint", exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected error in upload_patient_image_endpoint: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload image"
        )


@router.get("/download-patient-image", status_code=status.HTTP_200_OK)
async def download_patient_image_endpoint(
    url: str = Query(..., min_length=1, description="Previously issued image URL"),
    images: ImageStore = Depends(get_image_store),
) -> Response:
    """Re-sign a stored image URL and return the bytes as an attachment."""
    try:
        content, content_type, filename = await images.download_image(url)
    except HTTPException:
        logger.error("HTTPException raised in download_patient_image_endpoint", exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected error in download_patient_image_endpoint: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to download image"
        )

    logger.info(f"Serving image download: {filename} ({len(content)} bytes)")
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": build_content_disposition(filename)},
    )
