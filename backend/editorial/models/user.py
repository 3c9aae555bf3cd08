"""
Journal users: authors, reviewers, editors and admins.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, EmailStr
from bson import ObjectId


class PyObjectId(ObjectId):
    """ObjectId that validates from str and serializes to str in JSON mode."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type, handler):
        from pydantic_core import core_schema
        return core_schema.no_info_plain_validator_function(
            cls.validate,
            serialization=core_schema.plain_serializer_function_ser_schema(str, when_used="json"),
        )

    @classmethod
    def validate(cls, v):
        if not ObjectId.is_valid(v):
            raise ValueError("Invalid ObjectId")
        return ObjectId(v)

    @classmethod
    def __get_pydantic_json_schema__(cls, field_schema, handler):
        return {"type": "string"}


class Role(str, Enum):
    """Closed set of editorial roles."""
    AUTHOR = "author"
    REVIEWER = "reviewer"
    EDITOR = "editor"
    ADMIN = "admin"


class UserBase(BaseModel):
    email: EmailStr = Field(..., description="Contact address for workflow notifications")
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    affiliation: str = Field(default="", max_length=200)

    class Config:
        populate_by_name = True
        use_enum_values = True
        json_encoders = {ObjectId: str}


class UserCreate(UserBase):
    roles: List[Role] = Field(default_factory=lambda: [Role.AUTHOR.value])
    orcid: Optional[str] = Field(None, pattern=r"^\d{4}-\d{4}-\d{4}-\d{3}[0-9X]$")
    expertise: List[str] = Field(default_factory=list)


class UserInDB(UserBase):
    """A ``users`` document. Roles are stored as their string values."""
    id: PyObjectId = Field(default_factory=PyObjectId, alias="_id")
    roles: List[Role] = Field(default_factory=lambda: [Role.AUTHOR.value])
    orcid: Optional[str] = None
    expertise: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    is_active: bool = Field(default=True, description="Inactive users are rejected at the API boundary")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    class Config:
        populate_by_name = True
        arbitrary_types_allowed = True
        use_enum_values = True
        json_encoders = {ObjectId: str}
