"""Prediction schemas for classifier output."""

from typing import Optional, List, Dict, Union
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class ClassifierResponse(BaseModel):
    """Raw classifier output as the hosted model returns it.

    Scores arrive as header strings or JSON numbers; both validate into floats.
    """

    word: str = Field(default="", description="Primary label chosen by the classifier")
    healthy_score: float = Field(default=0.0, description="Healthy score")
    tb_score: float = Field(default=0.0, description="Tuberculosis score")
    pneumonia_score: float = Field(default=0.0, description="Pneumonia score")

    @field_validator("healthy_score", "tb_score", "pneumonia_score", mode="before")
    @classmethod
    def blank_score_to_zero(cls, v: Union[str, float, int, None]):
        """Missing or empty scores count as zero."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0.0
        return v

    @field_validator("word", mode="before")
    @classmethod
    def strip_word(cls, v):
        if v is None:
            return ""
        return str(v).strip()


class Prediction(BaseModel):
    """Internal prediction shape consumed by the report generator."""

    healthy: float = Field(..., ge=0, le=100, description="Healthy probability (0-100)")
    tuberculosis: float = Field(..., ge=0, le=100, description="Tuberculosis probability (0-100)")
    pneumonia: float = Field(..., ge=0, le=100, description="Pneumonia probability (0-100)")
    prediction: str = Field(..., description="Primary predicted label")
    symptoms: Optional[Union[List[str], Dict[str, bool]]] = Field(None, description="Symptoms checked for the patient, if any")
    annotated_image: Optional[str] = Field(None, description="Base64 image returned by the classifier")

    class Config:
        """Pydantic config."""
        alias_generator = to_camel
        populate_by_name = True

    @classmethod
    def from_classifier(cls, response: ClassifierResponse, annotated_image: Optional[str] = None) -> "Prediction":
        """Map the classifier's field names onto the internal shape."""
        return cls(
            healthy=response.healthy_score,
            tuberculosis=response.tb_score,
            pneumonia=response.pneumonia_score,
            prediction=response.word,
            annotated_image=annotated_image,
        )
