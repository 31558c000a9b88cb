"""Patient schemas for request/response validation."""

import re
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, EmailStr
from pydantic.alias_generators import to_camel
from enum import Enum

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]{10,}$")


class SexEnum(str, Enum):
    """Patient sex options."""
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNSPECIFIED = "unspecified"


class SymptomEnum(str, Enum):
    """Fixed symptom checklist shown on the registration forms."""
    PROLONGED_COUGH = "Cough (more than three weeks)"
    FEVER = "Fever"
    SWEATING = "Sweating"
    SMOKING = "Smoking"
    CHEST_PAIN = "Chest Pain"
    SHORTNESS_OF_BREATH = "Shortness of Breath"
    WEIGHT_LOSS = "Weight Loss"
    NIGHT_SWEATS = "Night Sweats"
    FATIGUE = "Fatigue"
    BLOOD_IN_SPUTUM = "Blood in Sputum"


# Checkbox keys written by the registrar form, stored in place of labels.
REGISTRAR_SYMPTOM_KEYS = {
    "coughMoreThanThreeWeek": SymptomEnum.PROLONGED_COUGH,
    "fever": SymptomEnum.FEVER,
    "sweating": SymptomEnum.SWEATING,
    "smoking": SymptomEnum.SMOKING,
    "chestPain": SymptomEnum.CHEST_PAIN,
    "shortnessOfBreathe": SymptomEnum.SHORTNESS_OF_BREATH,
}


class PatientBase(BaseModel):
    """Base patient schema with common fields."""

    name: str = Field(..., min_length=1, max_length=200, description="Patient's full name")
    age: int = Field(..., ge=0, le=150, description="Patient age in years")
    sex: SexEnum = Field(default=SexEnum.UNSPECIFIED, description="Patient sex")
    email: Optional[EmailStr] = Field(None, description="Patient's email")
    phone: Optional[str] = Field(None, description="Patient contact number")
    address: str = Field(default="", description="Postal address")
    symptoms: List[SymptomEnum] = Field(default_factory=list, description="Checked symptoms")
    medical_history: str = Field(default="", description="Free-text medical history")
    allergies: str = Field(default="", description="Known allergies")
    medications: str = Field(default="", description="Current medications")
    emergency_contact: str = Field(default="", description="Emergency contact name and number")
    images: List[str] = Field(default_factory=list, description="Ordered image references (signed URLs or object keys)")

    class Config:
        """Pydantic config."""
        alias_generator = to_camel
        populate_by_name = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject names that are only whitespace."""
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()

    @field_validator("sex", mode="before")
    @classmethod
    def normalize_sex(cls, v):
        """Accept any casing and treat blanks as unspecified."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return SexEnum.UNSPECIFIED
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("email", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Forms send empty strings for untouched optional inputs."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        """Validate phone number format if provided."""
        if v is not None and not PHONE_PATTERN.match(v):
            raise ValueError("phone must contain at least 10 digits, spaces, dashes or parentheses")
        return v

    @field_validator("symptoms", mode="before")
    @classmethod
    def map_registrar_keys(cls, v):
        """Translate registrar checkbox keys to checklist labels."""
        if isinstance(v, list):
            return [REGISTRAR_SYMPTOM_KEYS.get(item, item) if isinstance(item, str) else item for item in v]
        return v

    @field_validator("symptoms")
    @classmethod
    def dedupe_symptoms(cls, v: List[SymptomEnum]) -> List[SymptomEnum]:
        """Collapse duplicate checklist entries, keeping first-seen order."""
        return list(dict.fromkeys(v))


class PatientCreate(PatientBase):
    """Schema for creating a new patient."""


class PatientUpdate(PatientBase):
    """Full patient record sent back by the edit form.

    patient_id is optional here so the handler can answer 400 instead of
    a validation error when the client forgets it.
    """

    patient_id: Optional[str] = Field(None, description="Identifier of the record to overwrite")
    created_at: Optional[datetime] = Field(None, description="Original creation timestamp")


class PatientResponse(PatientBase):
    """Schema for patient response."""

    patient_id: str = Field(..., min_length=1, description="Opaque patient identifier")
    created_at: Optional[datetime] = Field(None, description="Timestamp when patient was created")
    updated_at: Optional[datetime] = Field(None, description="Timestamp when patient was last updated")
