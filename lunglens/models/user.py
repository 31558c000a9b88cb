"""This file contains the user model for the application."""

from enum import Enum
from pydantic import Field
import bcrypt

from lunglens.models.base import BaseModel


class RoleEnum(str, Enum):
    """Clinician roles."""
    DOCTOR = "doctor"
    REGISTRAR = "registrar"


class User(BaseModel):
    """User model for clinician accounts.

    Attributes:
        user_id: Login identifier, stored as userId
        name: Display name
        role: doctor or registrar
        hashed_password: Bcrypt hashed password
    """

    user_id: str = Field(..., alias="userId")
    name: str = Field(default="")
    role: RoleEnum
    hashed_password: str

    def verify_password(self, password: str) -> bool:
        """Verify if the provided password matches the hash."""
        return bcrypt.checkpw(password.encode("utf-8"), self.hashed_password.encode("utf-8"))

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt()
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")
