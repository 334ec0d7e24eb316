"""Doctor schemas for request/response validation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class DoctorBase(BaseModel):
    """Base schema for doctor."""

    name: str = Field(..., min_length=2, max_length=100)
    specialty: str | None = Field(None, max_length=100)

    @field_validator("name", "specialty")
    @classmethod
    def strip_whitespace(cls, v: str | None) -> str | None:
        """Trim surrounding whitespace."""
        return v.strip() if v is not None else None


class DoctorCreate(DoctorBase):
    """Schema for creating a doctor."""


class DoctorUpdate(BaseModel):
    """Schema for updating a doctor."""

    name: str | None = Field(None, min_length=2, max_length=100)
    specialty: str | None = Field(None, max_length=100)


class DoctorResponse(DoctorBase):
    """Doctor response schema."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
