"""Patient schemas for request/response validation."""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

PHONE_PATTERN = re.compile(r"^[\d\s\-+()]+$")


def _lower_email(v: str | None) -> str | None:
    return v.lower() if v is not None else None


def _clean_phone(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not PHONE_PATTERN.match(v):
        raise ValueError("Please provide a valid phone number")
    return v


class PatientBase(BaseModel):
    """Base schema for patient."""

    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        """Trim surrounding whitespace."""
        return v.strip()

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str | None) -> str | None:
        """Store addresses lower-cased."""
        return _lower_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Allow digits and common separators only."""
        return _clean_phone(v)


class PatientCreate(PatientBase):
    """Schema for creating a patient."""


class PatientUpdate(BaseModel):
    """Schema for updating a patient."""

    name: str | None = Field(None, min_length=2, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str | None) -> str | None:
        """Store addresses lower-cased."""
        return _lower_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Allow digits and common separators only."""
        return _clean_phone(v)


class PatientResponse(PatientBase):
    """Patient response schema."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
