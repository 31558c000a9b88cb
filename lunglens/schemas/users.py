"""User schemas for clinician accounts."""

from pydantic import BaseModel, Field
from lunglens.models.user import RoleEnum


class LoginRequest(BaseModel):
    """Login form payload."""

    userId: str = Field(..., min_length=1, description="Clinician user ID")
    password: str = Field(..., min_length=1, description="Plain-text password")


class UserResponse(BaseModel):
    """Public view of a clinician account."""

    userId: str = Field(..., description="Clinician user ID")
    name: str = Field(default="", description="Display name")
    role: RoleEnum = Field(..., description="doctor or registrar")
