"""Base model with tenant (client) scoping and timestamp fields."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models with common fields."""

    pass


class ClientMixin:
    """Mixin for tenant isolation - the owning organisation (client)."""

    client_id: Mapped[UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        comment="Client (organisation) this row belongs to",
    )


class TimestampMixin:
    """Mixin for timestamp fields - created_at and updated_at only."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Timestamp when record was created",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="Timestamp when record was last updated",
    )


class BaseModel(Base, ClientMixin, TimestampMixin):
    """
    Base model for tenant-scoped tables.

    Includes:
    - id (primary key)
    - client_id (tenant scope)
    - created_at, updated_at
    """

    __abstract__ = True

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        comment="Primary key (UUID)",
    )
