"""Patient model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Column, Index, String, Table, Uuid, func

from app.models.base import UTCDateTime, metadata

patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", String(100), nullable=False),
    # Stored lower-cased; uniqueness enforced here and checked in the service
    Column("email", String(254), nullable=True, unique=True),
    Column("phone", String(20), nullable=True),
    # Metadata
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
    Index("ix_patients_name_email", "name", "email"),
)
