"""Report schemas for generated X-ray reports."""

from pydantic import BaseModel, Field


class Report(BaseModel):
    """Three-field report derived from a prediction."""

    summary: str = Field(default="", description="Summary of the X-ray findings")
    cause: str = Field(default="", description="Likely causes and risk factors")
    suggestedActions: str = Field(default="", description="Recommended next steps")
