"""Base models and common helpers for stored documents."""

from typing import Any, Dict, Optional
from pydantic import BaseModel as PydanticBaseModel


class BaseModel(PydanticBaseModel):
    """Base model for documents kept in MongoDB collections."""

    class Config:
        """Pydantic config."""
        populate_by_name = True

    def to_mongo(self) -> Dict[str, Any]:
        """Convert model to a MongoDB document."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def from_mongo(cls, data: Optional[Dict[str, Any]]):
        """Create model instance from a MongoDB document, dropping Mongo's _id."""
        if not data:
            return None
        data = {key: value for key, value in data.items() if key != "_id"}
        return cls(**data)
