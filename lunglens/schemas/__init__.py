"""This file contains the schemas for the application."""
from lunglens.schemas.patients import (
    PatientCreate,
    PatientUpdate,
    PatientResponse,
    SexEnum,
    SymptomEnum,
)
from lunglens.schemas.predictions import ClassifierResponse, Prediction
from lunglens.schemas.reports import Report
from lunglens.schemas.images import ImageUploadResponse
from lunglens.schemas.users import LoginRequest, UserResponse

__all__ = [
    "PatientCreate",
    "PatientUpdate",
    "PatientResponse",
    "SexEnum",
    "SymptomEnum",
    "ClassifierResponse",
    "Prediction",
    "Report",
    "ImageUploadResponse",
    "LoginRequest",
    "UserResponse",
]
