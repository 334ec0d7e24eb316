"""Doctor model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Column, Index, String, Table, Uuid, func

from app.models.base import UTCDateTime, metadata

doctors = Table(
    "doctors",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", String(100), nullable=False),
    Column("specialty", String(100), nullable=True),
    # Metadata
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
    Index("ix_doctors_name", "name"),
)
