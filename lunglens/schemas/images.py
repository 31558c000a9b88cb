"""Image upload schemas."""

from pydantic import BaseModel, Field


class ImageUploadResponse(BaseModel):
    """Response after uploading a patient image."""

    imageUrl: str = Field(..., description="Signed URL for the uploaded image")
    imageKey: str = Field(..., description="Object key used to re-sign the image later")
